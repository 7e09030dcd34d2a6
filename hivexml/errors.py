"""Exception hierarchy for hivexml.

Engine-side failures derive from HiveError. XMLWriteError and
InvariantViolation are always fatal to a conversion; AttributeEmitError and
ProvenanceError are the recoverable failures handed to an ErrorPolicy.
"""

from typing import Any, Optional


class HiveXMLError(Exception):
    """Base class for all hivexml errors."""
    pass


class HiveError(HiveXMLError):
    """Raised by the traversal engine."""
    pass


class HiveOpenError(HiveError):
    """The hive file could not be opened or is not a hive."""

    def __init__(self, path: Any, reason: Any):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class HiveCloseError(HiveError):
    """Releasing the hive handle failed."""
    pass


class HiveFormatError(HiveError):
    """A malformed entry was found while walking the hive."""

    def __init__(self, message: str, handle: Optional[int] = None):
        self.handle = handle
        super().__init__(message)


class TraversalAborted(HiveError):
    """The traversal stopped before visiting the whole tree."""
    pass


class ProvenanceError(HiveError):
    """An introspection query used for byte-run provenance failed."""

    def __init__(self, message: str, handle: Optional[int] = None):
        self.handle = handle
        super().__init__(message)


class InvalidHandleError(ProvenanceError):
    """The engine does not recognise the handle as a node or value."""
    pass


class XMLWriteError(HiveXMLError):
    """The XML writer failed; the output document is unusable."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        message = f"{operation}: failed to write XML document"
        if cause is not None:
            message = f"{message} ({cause})"
        super().__init__(message)


class AttributeEmitError(HiveXMLError):
    """An attribute could not be written because an input was missing."""
    pass


class InvariantViolation(HiveXMLError):
    """A value reached a handler incompatible with its type tag.

    This means the traversal engine broke its contract. No XML is written for
    the offending value; continuing would produce semantically wrong output.
    """

    def __init__(self, handler: str, value_type: Any, decoded: bool = True):
        self.handler = handler
        self.value_type = value_type
        self.decoded = decoded
        state = "decoded" if decoded else "undecodable"
        super().__init__(
            f"{handler}: internal error, {state} value of type {value_type!r} "
            f"routed to the wrong handler"
        )
