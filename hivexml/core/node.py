"""Node and value handles for hivexml.

Handles are intentionally kept simple - they are data containers handed to
the visitor callbacks. Everything that needs the underlying store (struct
lengths, data cells, timestamps) is an introspection query on the
HiveAdapter, which is the key to keeping the serializer independent of the
binary format.
"""

from typing import Any, List, Optional, Union

from ..config import ValueType


class HiveNode:
    """A position in the hive's tree (a registry key).

    The handle is the file offset of the node's cell. It is opaque to the
    serializer, which only prints it as a provenance offset.
    """

    __slots__ = ('handle', 'name', 'raw_name')

    def __init__(self, handle: int, name: Optional[str], raw_name: bytes = b""):
        """Initialize a node handle.

        Args:
            handle: Engine handle (cell offset) identifying the node
            name: Key name exactly as stored; not guaranteed printable, None if undecodable
            raw_name: Stored name bytes, kept for names that failed to decode
        """
        self.handle = handle
        self.name = name
        self.raw_name = raw_name

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(handle={self.handle!r}, name={self.name!r})"

    def __eq__(self, other: object) -> bool:
        """Nodes are equal if they have the same handle."""
        if not isinstance(other, HiveNode):
            return NotImplemented
        return self.handle == other.handle

    def __hash__(self) -> int:
        return hash(('node', self.handle))


class HiveValue:
    """One named, typed value attached to a node.

    ``data`` holds the payload decoded by the engine, shaped by type:

    - STRING / EXPAND_STRING / LINK: ``str``
    - MULTIPLE_STRINGS: ``List[str]``
    - DWORD / DWORD_BE / QWORD: ``int`` (host order, may be unsigned)
    - everything else: ``bytes``

    When ``decoded`` is False the engine could not decode a string-shaped
    payload and ``data`` is None; ``raw`` always carries the undecoded bytes
    and ``length`` the payload length in bytes.
    """

    __slots__ = ('handle', 'key', 'type', 'length', 'data', 'raw', 'decoded', 'raw_key')

    def __init__(self,
                 handle: int,
                 key: Optional[str],
                 value_type: Union[ValueType, int],
                 length: int,
                 data: Any = None,
                 raw: bytes = b"",
                 decoded: bool = True,
                 raw_key: bytes = b""):
        """Initialize a value handle.

        Args:
            handle: Engine handle (cell offset) identifying the value
            key: Value name; empty string for the node's default value, None if undecodable
            value_type: ValueType tag or unknown numeric type id
            length: Payload length in bytes
            data: Decoded payload (see class docstring)
            raw: Undecoded payload bytes
            decoded: False if a string-shaped payload failed to decode
            raw_key: Stored key bytes, kept for keys that failed to decode
        """
        self.handle = handle
        self.key = key
        self.type = ValueType.coerce(value_type)
        self.length = length
        self.data = data
        self.raw = raw
        self.decoded = decoded
        self.raw_key = raw_key

    @property
    def is_default(self) -> bool:
        """True for the node's unnamed default value."""
        return self.key == ""

    def strings(self) -> List[str]:
        """Return the decoded entries of a multi-string value."""
        if self.type != ValueType.MULTIPLE_STRINGS or not self.decoded:
            raise TypeError(f"{self!r} is not a decoded multi-string value")
        return list(self.data or [])

    def __repr__(self) -> str:
        return (f"{self.__class__.__name__}(handle={self.handle!r}, key={self.key!r}, "
                f"type={self.type!r}, length={self.length!r}, decoded={self.decoded!r})")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HiveValue):
            return NotImplemented
        return self.handle == other.handle

    def __hash__(self) -> int:
        return hash(('value', self.handle))
