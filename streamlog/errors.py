"""
Error taxonomy for streamlog.

Structural errors (not found, conflict, validation) abort a whole command.
Per-item misses inside batch commands (Ack, Claim) are not errors and never
raise; they are reflected in the partial result instead.
"""


class StreamLogError(Exception):
    """Base class for all errors surfaced to callers."""
    
    code = "ERR"
    
    def __str__(self) -> str:
        message = super().__str__()
        return f"{self.code} {message}" if message else self.code


class NotFoundError(StreamLogError):
    """A referenced log or group does not exist."""
    pass


class NoSuchLogError(NotFoundError):
    """Raised when a log has never been created."""
    
    code = "NOSUCHLOG"


class NoSuchGroupError(NotFoundError):
    """Raised when a consumer group is not registered for a log."""
    
    code = "NOGROUP"


class ConflictError(StreamLogError):
    """The requested object already exists."""
    pass


class GroupExistsError(ConflictError):
    """Raised on duplicate group creation."""
    
    code = "BUSYGROUP"


class ResourceError(StreamLogError):
    """A bounded resource is exhausted; the caller may retry later."""
    pass


class IdentifierOverflowError(ResourceError):
    """Raised when the sequence part of an id overflows within one millisecond."""
    
    code = "IDOVERFLOW"


class ValidationError(StreamLogError):
    """Raised for malformed arguments: field lists, names, ids, options."""
    
    code = "INVALID"
