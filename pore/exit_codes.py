"""
Standard exit codes and error types for pore commands.

Following Unix/POSIX conventions for command-line tools.
"""

# Standard POSIX exit codes
SUCCESS = 0              # Successful termination
GENERAL_ERROR = 1        # General errors, including any failed project job
USAGE_ERROR = 2          # Misuse of shell command (wrong arguments, etc.)

# Application-specific exit codes (64-113 are typically available)
NETWORK_ERROR = 68       # Fetch transport failed
CONFIG_ERROR = 66        # Configuration file error, unknown remote or depot
PERMISSION_ERROR = 67    # Insufficient permissions
DATA_ERROR = 70          # Manifest or tree state could not be parsed
INTERRUPTED = 130        # Terminated by Ctrl+C (SIGINT)

# Exit code mappings for common exceptions
EXCEPTION_EXIT_CODES = {
    'FileNotFoundError': GENERAL_ERROR,
    'PermissionError': PERMISSION_ERROR,
    'ConnectionError': NETWORK_ERROR,
    'TimeoutError': NETWORK_ERROR,
    'ValueError': DATA_ERROR,
    'KeyError': DATA_ERROR,
    'TOMLDecodeError': DATA_ERROR,
    'KeyboardInterrupt': INTERRUPTED,
}


def get_exit_code_for_exception(exc: BaseException) -> int:
    """
    Get the appropriate exit code for an exception.

    Args:
        exc: The exception that occurred

    Returns:
        Appropriate exit code
    """
    if isinstance(exc, CommandError):
        return exc.exit_code
    exc_name = exc.__class__.__name__
    return EXCEPTION_EXIT_CODES.get(exc_name, GENERAL_ERROR)


def root_cause(exc: BaseException) -> BaseException:
    """Follow the explicit ``raise ... from`` chain to the innermost exception."""
    seen = set()
    while exc.__cause__ is not None and id(exc) not in seen:
        seen.add(id(exc))
        exc = exc.__cause__
    return exc


def describe_error(exc: BaseException) -> str:
    """``<message>: <root cause>`` when the error wraps another one, else ``<message>``."""
    message = str(exc) or type(exc).__name__
    cause = root_cause(exc)
    if cause is exc:
        return message
    cause_message = str(cause) or type(cause).__name__
    return f"{message}: {cause_message}"


def format_fatal(exc: BaseException) -> str:
    """Render the one-line message printed when a command dies."""
    return f"fatal: {describe_error(exc)}"


class CommandError(Exception):
    """
    Exception that commands can raise to indicate specific exit codes.
    """
    def __init__(self, message: str, exit_code: int = GENERAL_ERROR):
        super().__init__(message)
        self.exit_code = exit_code


class ConfigError(CommandError):
    """Raised for unknown remotes/depots or an unusable configuration."""
    def __init__(self, message: str):
        super().__init__(message, CONFIG_ERROR)


class ManifestError(CommandError):
    """Raised when a manifest cannot be read or is malformed."""
    def __init__(self, message: str):
        super().__init__(message, DATA_ERROR)


class DepotError(CommandError):
    """Raised when a depot mirror operation fails."""
    def __init__(self, message: str, exit_code: int = GENERAL_ERROR):
        super().__init__(message, exit_code)


class InvalidProjectError(DepotError):
    """Raised for project names that would escape the depot layout."""


class TransportError(DepotError):
    """Raised when fetching from a remote fails."""
    def __init__(self, message: str):
        super().__init__(message, NETWORK_ERROR)


class RevisionError(CommandError):
    """Raised when a branch, ref or commit cannot be resolved."""


class TreeError(CommandError):
    """Raised for tree-level failures (missing tree, bad project directory)."""


class GitCommandError(CommandError):
    """Raised when the git binary exits non-zero."""
    def __init__(self, message: str, stderr: str = "", returncode: int = 1):
        super().__init__(message)
        self.stderr = stderr
        self.returncode = returncode
