"""In-memory hive for tests and examples.

MemoryHive builds a tree of keys and values without a hive file, and
MemoryHiveAdapter exposes it through the engine contract. Payload bytes are
produced the way they are stored on disk (UTF-16LE strings, little-endian
integers), and the fixture can inject the failures a damaged hive causes:
malformed entries, handles the engine does not recognise, data cells that
cannot be located, and a failing close.
"""

import struct
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple, Union

from ..config import STRING_TYPES, ValueType
from ..core.adapter import HiveAdapter
from ..core.node import HiveNode, HiveValue
from ..errors import HiveCloseError, HiveFormatError, InvalidHandleError, ProvenanceError

# A fresh hive's first key cell sits right after the header and first hbin header
FIRST_CELL_OFFSET = 0x1020

NK_FIXED_SIZE = 0x50
VK_FIXED_SIZE = 0x18

Entry = Union[HiveNode, HiveValue, HiveFormatError]


def encode_string(text: str) -> bytes:
    """Encode text the way REG_SZ stores it, NUL terminated."""
    return (text + "\x00").encode("utf-16le")


def encode_multiple_strings(strings: List[str]) -> bytes:
    """Encode a REG_MULTI_SZ payload, ending with an empty string."""
    return "".join(s + "\x00" for s in strings).encode("utf-16le") + b"\x00\x00"


def encode_payload(value_type: Union[ValueType, int], data: Any) -> bytes:
    """Produce the stored bytes for a decoded payload."""
    if value_type in STRING_TYPES:
        if value_type == ValueType.MULTIPLE_STRINGS:
            return encode_multiple_strings(data)
        return encode_string(data)
    if value_type == ValueType.DWORD:
        return struct.pack("<I", data & 0xFFFFFFFF)
    if value_type == ValueType.DWORD_BE:
        return struct.pack(">I", data & 0xFFFFFFFF)
    if value_type == ValueType.QWORD:
        return struct.pack("<Q", data & 0xFFFFFFFFFFFFFFFF)
    return bytes(data or b"")


class _Key:
    __slots__ = ('node', 'timestamp', 'struct_length', 'children', 'values')

    def __init__(self, node: HiveNode, timestamp: Optional[int], struct_length: int):
        self.node = node
        self.timestamp = timestamp
        self.struct_length = struct_length
        self.children: List[Entry] = []
        self.values: List[Entry] = []


class _ResumableIterator:
    """Yields entries in order and raises the HiveFormatError markers in place."""

    def __init__(self, entries: List[Entry]):
        self.entries = list(entries)
        self.index = 0

    def __iter__(self) -> '_ResumableIterator':
        return self

    def __next__(self) -> Any:
        if self.index >= len(self.entries):
            raise StopIteration
        entry = self.entries[self.index]
        self.index += 1
        if isinstance(entry, HiveFormatError):
            raise entry
        return entry


class MemoryHive:
    """Builder for an in-memory hive.

    Example:
        hive = MemoryHive("Root", timestamp=FILETIME)
        hive.add_value(hive.root, "hello", ValueType.STRING, "world")
        child = hive.add_key(hive.root, "Software")
        adapter = hive.adapter()
    """

    def __init__(self,
                 root_name: Optional[str] = "ROOT",
                 timestamp: Optional[int] = None,
                 last_modified: Optional[int] = None):
        """Create a hive holding only its root key.

        Args:
            root_name: Name of the root key
            timestamp: Root key's last-written FILETIME
            last_modified: Header FILETIME reported by last_modified()
        """
        self.last_modified = last_modified
        self._next_offset = FIRST_CELL_OFFSET
        self._keys: Dict[int, _Key] = {}
        self._values: Dict[int, Tuple[HiveValue, int, Tuple[int, int]]] = {}

        # Fault injection
        self.invalid_handles: Set[int] = set()
        self.lost_data_cells: Set[int] = set()
        self.bad_child_lists: Set[int] = set()
        self.fail_close = False

        self.root = self.add_key(None, root_name, timestamp=timestamp)

    def _allocate(self, size: int) -> int:
        offset = self._next_offset
        # Cells are 8-byte aligned
        self._next_offset += (size + 4 + 7) & ~7
        return offset

    def add_key(self,
                parent: Optional[HiveNode],
                name: Optional[str],
                timestamp: Optional[int] = None,
                struct_length: Optional[int] = None,
                raw_name: bytes = b"") -> HiveNode:
        """Add a key below ``parent`` (None only for the root).

        An undecodable name is given as ``name=None`` with its stored bytes
        in ``raw_name``.
        """
        if struct_length is None:
            struct_length = NK_FIXED_SIZE + len(name or raw_name)
        node = HiveNode(self._allocate(struct_length), name, raw_name)
        self._keys[node.handle] = _Key(node, timestamp, struct_length)
        if parent is not None:
            self._keys[parent.handle].children.append(node)
        return node

    def add_value(self,
                  node: HiveNode,
                  key: Optional[str],
                  value_type: Union[ValueType, int],
                  data: Any = None,
                  raw: Optional[bytes] = None,
                  decoded: bool = True,
                  length: Optional[int] = None,
                  data_cell: Optional[Tuple[int, int]] = None,
                  raw_key: bytes = b"") -> HiveValue:
        """Attach a value to ``node``.

        The stored bytes are derived from ``data`` unless ``raw`` is given.
        For a value that failed to decode pass ``raw`` and ``decoded=False``.

        Args:
            node: Owning key
            key: Value name, "" for the default value
            value_type: ValueType or unknown numeric id
            data: Decoded payload
            raw: Stored bytes, overriding the encoding of ``data``
            decoded: False to mark a string payload as undecodable
            length: Payload length, defaults to ``len(raw)``
            data_cell: ``(offset, length)`` of the data cell; by default a
                cell is allocated for payloads longer than 4 bytes
            raw_key: Stored key bytes for a key that failed to decode
        """
        value_type = ValueType.coerce(value_type)
        if raw is None:
            raw = encode_payload(value_type, data)
        if not decoded:
            data = None
        elif value_type not in STRING_TYPES and not isinstance(data, int):
            data = raw
        if length is None:
            length = len(raw)

        struct_length = VK_FIXED_SIZE + len(key or raw_key)
        value = HiveValue(self._allocate(struct_length), key, value_type, length,
                          data=data, raw=raw, decoded=decoded, raw_key=raw_key)

        if data_cell is None:
            data_cell = (0, 0)
            if length > 4:
                data_cell = (self._allocate(length), length + 4)

        self._values[value.handle] = (value, struct_length, data_cell)
        self._keys[node.handle].values.append(value)
        return value

    def add_bad_child(self, node: HiveNode, message: str = "bad subkey") -> None:
        """Insert a subkey entry that raises HiveFormatError when reached."""
        self._keys[node.handle].children.append(HiveFormatError(message, node.handle))

    def add_bad_value(self, node: HiveNode, message: str = "bad value") -> None:
        """Insert a value entry that raises HiveFormatError when reached."""
        self._keys[node.handle].values.append(HiveFormatError(message, node.handle))

    def link_child(self, parent: HiveNode, child: HiveNode) -> None:
        """List an existing key again below ``parent``, e.g. to build a cycle."""
        self._keys[parent.handle].children.append(child)

    def adapter(self) -> 'MemoryHiveAdapter':
        return MemoryHiveAdapter(self)


class MemoryHiveAdapter(HiveAdapter):
    """Engine contract over a MemoryHive."""

    def __init__(self, hive: MemoryHive):
        self.hive = hive
        self.closed = False

    def _key(self, node: HiveNode) -> _Key:
        if node.handle in self.hive.invalid_handles or node.handle not in self.hive._keys:
            raise InvalidHandleError(f"{node.handle} is not a node", node.handle)
        return self.hive._keys[node.handle]

    def _value(self, value: HiveValue) -> Tuple[HiveValue, int, Tuple[int, int]]:
        if value.handle in self.hive.invalid_handles or value.handle not in self.hive._values:
            raise InvalidHandleError(f"{value.handle} is not a value", value.handle)
        return self.hive._values[value.handle]

    def root(self) -> HiveNode:
        return self.hive.root

    def get_children(self, node: HiveNode) -> Iterator[HiveNode]:
        if node.handle in self.hive.bad_child_lists:
            raise HiveFormatError(f"bad subkey list of node {node.handle}", node.handle)
        return _ResumableIterator(self.hive._keys[node.handle].children)

    def get_values(self, node: HiveNode) -> Iterator[HiveValue]:
        return _ResumableIterator(self.hive._keys[node.handle].values)

    def last_modified(self) -> Optional[int]:
        return self.hive.last_modified

    def node_timestamp(self, node: HiveNode) -> Optional[int]:
        return self._key(node).timestamp

    def node_struct_length(self, node: HiveNode) -> int:
        return self._key(node).struct_length

    def value_struct_length(self, value: HiveValue) -> int:
        return self._value(value)[1]

    def value_data_cell_offset(self, value: HiveValue) -> Tuple[int, int]:
        data_cell = self._value(value)[2]
        if value.handle in self.hive.lost_data_cells:
            raise ProvenanceError(f"data cell of value {value.handle} is missing", value.handle)
        return data_cell

    def close(self) -> None:
        if self.hive.fail_close:
            raise HiveCloseError("close failed")
        self.closed = True
