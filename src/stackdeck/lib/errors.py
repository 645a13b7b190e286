"""Custom exception hierarchy for StackDeck configuration and operations."""


class StackDeckError(Exception):
    """Base exception for all StackDeck errors.

    All StackDeck-specific exceptions inherit from this class, enabling
    centralized exception handling in the CLI and in callers of the
    provider and backend layers.
    """

    pass


class ConfigError(StackDeckError):
    """Exception raised for configuration errors.

    This exception is raised when stack file loading or parsing fails.
    It includes field-specific information to help users identify and fix
    configuration issues.

    Attributes:
        field: The configuration field that caused the error
        message: Human-readable error message describing the issue
    """

    def __init__(self, field: str, message: str) -> None:
        """Initialize ConfigError with field and message.

        Args:
            field: Configuration field name where error occurred
            message: Descriptive error message
        """
        self.field = field
        self.message = message
        super().__init__(f"Configuration error in '{field}': {message}")


class FileNotFoundError(StackDeckError):
    """Exception raised when a stack file is not found.

    Attributes:
        path: Path to the file that was not found
        message: Human-readable error message
    """

    def __init__(self, path: str, message: str) -> None:
        """Initialize FileNotFoundError with path and message.

        Args:
            path: Path to the file that was not found
            message: Descriptive error message, optionally with suggestions
        """
        self.path = path
        self.message = message
        super().__init__(f"File not found: {path}\n{message}")


class DeploymentError(StackDeckError):
    """Exception raised when a resource provider operation fails.

    Attributes:
        operation: Provider operation that failed (e.g. "materialize")
        message: Human-readable error message
    """

    def __init__(self, operation: str, message: str) -> None:
        """Create a deployment error for an operation."""
        self.operation = operation
        self.message = message
        super().__init__(f"Deployment {operation} failed: {message}")


class SpawnError(DeploymentError):
    """Raised when the content server process could not be started."""

    def __init__(self, command: str, original_error: Exception) -> None:
        """Create a spawn error for the command that failed to exec."""
        self.command = command
        self.original_error = original_error
        super().__init__(
            operation="materialize",
            message=f"Failed to spawn '{command}': {original_error}",
        )


class StartupTimeoutError(DeploymentError):
    """Raised when a server does not report readiness within its budget.

    Attributes:
        port: Port the server was asked to bind
        timeout: Startup budget in seconds
    """

    def __init__(self, port: int, timeout: float) -> None:
        """Create a startup timeout error."""
        self.port = port
        self.timeout = timeout
        super().__init__(
            operation="materialize",
            message=f"Server startup timeout on port {port} after {timeout:g}s",
        )


class StartupExitError(DeploymentError):
    """Raised when a server exits with a non-zero code while starting.

    Attributes:
        port: Port the server was asked to bind
        returncode: Exit code reported by the process
    """

    def __init__(self, port: int, returncode: int) -> None:
        """Create a startup exit error."""
        self.port = port
        self.returncode = returncode
        super().__init__(
            operation="materialize",
            message=f"Server on port {port} exited with code {returncode}",
        )


class HealthCheckError(DeploymentError):
    """Raised when a started server never answers HTTP requests."""

    def __init__(self, port: int, attempts: int) -> None:
        """Create a health check error after exhausting all attempts."""
        self.port = port
        self.attempts = attempts
        super().__init__(
            operation="materialize",
            message=(
                f"Server on port {port} did not respond after {attempts} attempts"
            ),
        )


class StateBackendError(StackDeckError):
    """Exception raised when the state backend cannot complete an operation.

    Attributes:
        operation: Backend operation that failed (e.g. "save_state")
        message: Human-readable error message
    """

    def __init__(self, operation: str, message: str) -> None:
        """Create a state backend error for an operation."""
        self.operation = operation
        self.message = message
        super().__init__(f"State backend {operation} failed: {message}")


class LockConflictError(StateBackendError):
    """Raised when a stack lock is already held and has not expired.

    Callers get enough context to decide whether to wait, abort, or force
    the lock with ``release_lock``.

    Attributes:
        stack_name: Stack whose lock is held
        holder: Identity of the current lock holder
        age_seconds: Whole seconds since the lock was acquired
        ttl: Lock time-to-live in seconds
    """

    def __init__(self, stack_name: str, holder: str, age_seconds: int, ttl: float) -> None:
        """Create a lock conflict error naming the current holder."""
        self.stack_name = stack_name
        self.holder = holder
        self.age_seconds = age_seconds
        self.ttl = ttl
        super().__init__(
            operation="acquire_lock",
            message=(
                f"Lock already held by {holder} "
                f"(acquired {age_seconds}s ago, TTL: {ttl:g}s)"
            ),
        )
