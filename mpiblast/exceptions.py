"""Custom exception classes for mpi-blast.

Every failure a role can hit maps to one of these types, so the role runner can
log a consistent message (with an error code) before aborting the job.
"""

from typing import Optional, Dict, Any


class BlastRelayError(Exception):
    """Base exception for all mpi-blast errors."""

    error_code: str = "ERR000"  # Override in subclasses

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, error_code: Optional[str] = None):
        """
        Initialize mpi-blast exception.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional context
            error_code: Optional error code override
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code

    def __str__(self) -> str:
        """Return string representation with error code and details."""
        parts = [f"[{self.error_code}] {self.message}"]
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            parts.append(f"({detail_str})")
        return " ".join(parts)


class ConfigValidationError(BlastRelayError):
    """Raised when configuration validation fails.

    Examples:
        - Non-numeric or non-positive size limits
        - Unknown transport name
        - Config file that is not a YAML mapping
    """

    error_code = "CFG001"

    def __init__(self, message: str, config_path: Optional[str] = None, key: Optional[str] = None):
        """
        Initialize configuration validation error.

        Args:
            message: Description of validation failure
            config_path: Path to config file that failed validation
            key: Specific configuration key that caused the error
        """
        details = {}
        if config_path:
            details['config_path'] = config_path
        if key:
            details['config_key'] = key
        super().__init__(message, details)


class UsageError(BlastRelayError):
    """Raised when the command line cannot be turned into a search job."""

    error_code = "USE001"

    def __init__(self, message: str, argument: Optional[str] = None):
        details = {}
        if argument:
            details['argument'] = argument
        super().__init__(message, details)


class MalformedInputError(BlastRelayError):
    """Raised when the query source ends in the middle of a line.

    Examples:
        - Over-long header line with no line break before end of file
        - Last line of the file has no terminating line break
    """

    error_code = "INP001"

    def __init__(self, message: str, source: Optional[str] = None, offset: Optional[int] = None):
        """
        Initialize malformed input error.

        Args:
            message: Description of the problem
            source: Name of the query source
            offset: Byte offset at which the bad line starts
        """
        details: Dict[str, Any] = {}
        if source:
            details['source'] = source
        if offset is not None:
            details['offset'] = offset
        super().__init__(message, details)


class StorageError(BlastRelayError):
    """Raised when the query or output file cannot be opened or written."""

    error_code = "STG001"

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        file_path: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        """
        Initialize storage error.

        Args:
            message: Description of storage failure
            operation: Operation that failed (open, write, close)
            file_path: Local file path involved in the operation
            original_error: Original exception that caused this error
        """
        details = {}
        if operation:
            details['operation'] = operation
        if file_path:
            details['file_path'] = file_path
        if original_error:
            details['original_error'] = str(original_error)
            details['error_type'] = type(original_error).__name__

        super().__init__(message, details)
        self.original_error = original_error


class TransportError(BlastRelayError):
    """Raised when a message cannot be sent or received."""

    error_code = "TRN001"

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        peer: Optional[int] = None,
        tag: Optional[int] = None,
        original_error: Optional[Exception] = None
    ):
        """
        Initialize transport error.

        Args:
            message: Description of the failure
            operation: send or recv
            peer: Role id on the other side of the operation
            tag: Message tag involved
            original_error: Original exception raised by the transport library
        """
        details: Dict[str, Any] = {}
        if operation:
            details['operation'] = operation
        if peer is not None:
            details['peer'] = peer
        if tag is not None:
            details['tag'] = tag
        if original_error:
            details['original_error'] = str(original_error)
            details['error_type'] = type(original_error).__name__

        super().__init__(message, details)
        self.original_error = original_error


class TransportAborted(TransportError):
    """Raised in a blocked receive when another role aborted the job."""

    error_code = "TRN002"

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message, operation="recv")
        if code is not None:
            self.details['abort_code'] = code
        self.code = code


class ProtocolError(BlastRelayError):
    """Raised when a role receives a message it does not expect.

    Examples:
        - Sink session opened by a frame other than BEGIN
        - Coordinator receiving something other than a ready request
        - Worker receiving an unknown reply from the coordinator
    """

    error_code = "PRT001"

    def __init__(
        self,
        message: str,
        role: Optional[str] = None,
        peer: Optional[int] = None,
        tag: Optional[int] = None
    ):
        details: Dict[str, Any] = {}
        if role:
            details['role'] = role
        if peer is not None:
            details['peer'] = peer
        if tag is not None:
            details['tag'] = tag
        super().__init__(message, details)


class SubprocessLaunchError(BlastRelayError):
    """Raised when the search tool cannot be started."""

    error_code = "SUB001"

    def __init__(
        self,
        message: str,
        command: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        """
        Initialize subprocess launch error.

        Args:
            message: Description of the failure
            command: Executable that failed to start
            original_error: OSError raised by the process API
        """
        details = {}
        if command:
            details['command'] = command
        if original_error:
            details['original_error'] = str(original_error)
            details['error_type'] = type(original_error).__name__

        super().__init__(message, details)
        self.original_error = original_error
