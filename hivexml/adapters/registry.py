"""HiveAdapter over regf hive files, built on python-registry.

python-registry's ``RegistryParse`` module supplies the block and record
classes (REGF header, HBIN cells, nk/vk records, subkey lists). This adapter
maps them onto the engine contract:

- handles are cell offsets in the file, as in the on-disk format
- names and payloads are decoded here so that a failed decode can be
  reported per value instead of raising out of the library
- entries are enumerated by index, so a malformed entry raises
  HiveFormatError and the next call to ``next()`` resumes after it
- records are not kept: provenance queries rebuild them from the handle

The file is mapped read-only with mmap for the lifetime of the adapter.
"""

import logging
import mmap
import struct
from typing import Any, Callable, Iterator, List, Optional, Set, Tuple, Union

from Registry import RegistryParse

from ..config import STRING_TYPES, ValueType
from ..core.adapter import HiveAdapter
from ..core.node import HiveNode, HiveValue
from ..errors import (HiveCloseError, HiveFormatError, HiveOpenError,
                      InvalidHandleError, ProvenanceError)

logger = logging.getLogger(__name__)

# Record sizes without their variable-length name
NK_FIXED_SIZE = 0x50
VK_FIXED_SIZE = 0x18

# Offset of the record inside its cell (the cell size field)
CELL_HEADER_SIZE = 4

# Header fields
REGF_TIMESTAMP = 0xC

# Value data length flag: payload stored inside the vk record
DATA_INLINE_FLAG = 0x80000000
DATA_LENGTH_MASK = 0x7FFFFFFF

# Largest payload held by one data cell; larger payloads use a db record
MAX_DIRECT_DATA = 0x3FD8

NK_ASCII_NAME = 0x0020
VK_ASCII_NAME = 0x0001

# Deepest ri nesting accepted while flattening a subkey list
MAX_LIST_DEPTH = 4

# Failures raised by python-registry and struct while reading records
PARSE_ERRORS = (RegistryParse.RegistryException, struct.error,
                IndexError, ValueError, UnicodeDecodeError)


def _decode_name(raw: bytes, ascii_name: bool) -> Optional[str]:
    """Decode a key or value name, or return None if it is not valid UTF-16."""
    if ascii_name:
        return raw.decode("latin-1")
    try:
        return raw.decode("utf-16le")
    except UnicodeDecodeError:
        return None


def _utf16_terminated(raw: bytes) -> bytes:
    """Cut UTF-16LE data at the first NUL code unit."""
    for i in range(0, len(raw) - 1, 2):
        if raw[i] == 0 and raw[i + 1] == 0:
            return raw[:i]
    return raw


def decode_string(raw: bytes) -> str:
    """Decode a REG_SZ style payload.

    Raises:
        UnicodeDecodeError: If the payload is not valid UTF-16LE
    """
    return _utf16_terminated(raw).decode("utf-16le")


def decode_multiple_strings(raw: bytes) -> List[str]:
    """Decode a REG_MULTI_SZ payload; the list ends at the first empty string.

    Raises:
        UnicodeDecodeError: If the payload is not valid UTF-16LE
    """
    strings = []
    for entry in raw.decode("utf-16le").split("\x00"):
        if not entry:
            break
        strings.append(entry)
    return strings


class _EntryIterator:
    """Iterator over a list of cell offsets that survives bad entries.

    The position advances before an entry is built, so an entry that
    raises is skipped on the next call instead of ending the iteration.
    """

    def __init__(self, offsets: List[int], build: Callable[[int], Any], what: str):
        self.offsets = offsets
        self.build = build
        self.what = what
        self.index = 0

    def __iter__(self) -> '_EntryIterator':
        return self

    def __next__(self) -> Any:
        if self.index >= len(self.offsets):
            raise StopIteration
        offset = self.offsets[self.index]
        self.index += 1
        try:
            return self.build(offset)
        except PARSE_ERRORS as e:
            raise HiveFormatError(f"bad {self.what} at offset {offset}: {e}", offset) from e


class RegistryHiveAdapter(HiveAdapter):
    """Engine for regf files.

    Example:
        with RegistryHiveAdapter.open("SYSTEM") as adapter:
            HiveTraverser(adapter).traverse(visitor)
    """

    def __init__(self, path: str, buf: Union[bytes, mmap.mmap],
                 fileobj: Any = None, debug: bool = False):
        """Wrap an already loaded hive image; use open() for files.

        Args:
            path: Name used in diagnostics
            buf: Whole hive image
            fileobj: Open file backing ``buf``, closed by close()
            debug: Trace every record read at DEBUG level

        Raises:
            HiveOpenError: If ``buf`` is not a regf hive
        """
        self.path = path
        self.debug = debug
        self._buf = buf
        self._file = fileobj

        try:
            self._regf = RegistryParse.REGFBlock(buf, 0, False)
            self._hbin = next(self._regf.hbins())
            root_record = self._regf.first_key()
        except (StopIteration,) + PARSE_ERRORS as e:
            raise HiveOpenError(path, f"not a registry hive ({e})") from e

        self._root = self._make_node(root_record)
        if debug:
            logger.debug("%s: opened hive, root key %r at %d",
                         path, self._root.name, self._root.handle)

    @classmethod
    def open(cls, path: str, debug: bool = False) -> 'RegistryHiveAdapter':
        """Map a hive file read-only and parse its header.

        Raises:
            HiveOpenError: If the file cannot be read or is not a hive
        """
        try:
            fileobj = open(path, "rb")
        except OSError as e:
            raise HiveOpenError(path, e.strerror or e) from e

        try:
            buf = mmap.mmap(fileobj.fileno(), 0, access=mmap.ACCESS_READ)
        except (OSError, ValueError) as e:
            fileobj.close()
            raise HiveOpenError(path, f"cannot map file ({e})") from e

        try:
            return cls(path, buf, fileobj, debug=debug)
        except HiveOpenError:
            buf.close()
            fileobj.close()
            raise

    # Record construction

    def _cell(self, cell_offset: int) -> Any:
        return RegistryParse.HBINCell(self._buf, cell_offset, self._hbin)

    def _absolute(self, hbin_offset: int) -> int:
        return self._hbin.first_hbin().offset() + hbin_offset

    def _make_node(self, record: Any) -> HiveNode:
        handle = record.offset() - CELL_HEADER_SIZE
        name_length = record.unpack_word(0x48)
        raw_name = record.unpack_binary(0x4C, name_length)
        name = _decode_name(raw_name, bool(record.unpack_word(0x2) & NK_ASCII_NAME))
        node = HiveNode(handle, name, bytes(raw_name))
        if self.debug:
            logger.debug("%s: nk at %d name %r", self.path, handle, node.name)
        return node

    def _build_node(self, cell_offset: int) -> HiveNode:
        record = RegistryParse.NKRecord(self._buf, self._cell(cell_offset).data_offset(), self._hbin)
        return self._make_node(record)

    def _build_value(self, cell_offset: int) -> HiveValue:
        record = RegistryParse.VKRecord(self._buf, self._cell(cell_offset).data_offset(), self._hbin)
        handle = record.offset() - CELL_HEADER_SIZE

        name_length = record.unpack_word(0x2)
        raw_name = record.unpack_binary(0x14, name_length)
        key = _decode_name(raw_name, bool(record.unpack_word(0x10) & VK_ASCII_NAME))

        value_type = ValueType.coerce(record.unpack_dword(0xC))
        raw = self._payload(record)
        length = len(raw)

        data: Any = raw
        decoded = True
        if value_type in STRING_TYPES:
            try:
                if value_type == ValueType.MULTIPLE_STRINGS:
                    data = decode_multiple_strings(raw)
                else:
                    data = decode_string(raw)
            except UnicodeDecodeError:
                logger.debug("%s: value %r at %d is not valid UTF-16", self.path, key, handle)
                data, decoded = None, False
        elif value_type in (ValueType.DWORD, ValueType.DWORD_BE):
            if length != 4:
                raise HiveFormatError(f"dword value at offset {handle} has length {length}", handle)
            data = struct.unpack("<I" if value_type == ValueType.DWORD else ">I", raw)[0]
        elif value_type == ValueType.QWORD:
            if length != 8:
                raise HiveFormatError(f"qword value at offset {handle} has length {length}", handle)
            data = struct.unpack("<Q", raw)[0]

        if self.debug:
            logger.debug("%s: vk at %d key %r type %r length %d",
                         self.path, handle, key, value_type, length)
        return HiveValue(handle, key, value_type, length, data=data, raw=raw,
                          decoded=decoded, raw_key=bytes(raw_name))

    def _payload(self, record: Any) -> bytes:
        """Read a value's payload, inline, in one data cell, or through a db record."""
        raw_length = record.unpack_dword(0x4)
        length = raw_length & DATA_LENGTH_MASK

        if raw_length & DATA_INLINE_FLAG:
            return bytes(record.unpack_binary(0x8, min(length, 4)))

        cell = self._cell(self._absolute(record.unpack_dword(0x8)))
        if length > MAX_DIRECT_DATA and cell.data_id() == b"db":
            return bytes(cell.child().large_data(length))

        payload = bytes(cell.raw_data()[:length])
        if len(payload) != length:
            raise HiveFormatError(f"data cell of value at offset {record.offset()} is truncated",
                                  record.offset() - CELL_HEADER_SIZE)
        return payload

    def _load(self, handle: int, signature: bytes, record_class: Any) -> Any:
        """Rebuild the record a handle points to, checking its cell signature.

        Raises:
            InvalidHandleError: If the handle is not an allocated cell of that kind
        """
        what = signature.decode("ascii")
        try:
            cell = self._cell(handle)
            if cell.is_free() or cell.data_id() != signature:
                raise InvalidHandleError(f"no {what} record at {handle}", handle)
            return record_class(self._buf, cell.data_offset(), self._hbin)
        except PARSE_ERRORS as e:
            raise InvalidHandleError(f"no {what} record at {handle} ({e})", handle) from e

    def _record(self, node: HiveNode) -> Any:
        return self._load(node.handle, b"nk", RegistryParse.NKRecord)

    def _value_record(self, value: HiveValue) -> Any:
        return self._load(value.handle, b"vk", RegistryParse.VKRecord)

    def _subkey_offsets(self, record: Any) -> List[int]:
        """Flatten a key's subkey list (lf, lh, li or ri) into nk cell offsets."""
        if record.subkey_number() == 0:
            return []
        return self._list_offsets(record.subkey_list())

    def _list_offsets(self, subkey_list: Any) -> List[int]:
        """Walk a subkey list and the lists an ri record points to, in order.

        Raises:
            HiveFormatError: If an ri record points back at a list already
                being walked, or ri records nest deeper than MAX_LIST_DEPTH
        """
        offsets: List[int] = []
        seen: Set[int] = {subkey_list.offset()}
        pending: List[Tuple[Any, int]] = [(subkey_list, 0)]

        while pending:
            current, depth = pending.pop()
            count = current.unpack_word(0x2)

            if isinstance(current, RegistryParse.RIRecord):
                if depth >= MAX_LIST_DEPTH:
                    raise HiveFormatError(f"ri list at offset {current.offset()} "
                                          f"nests deeper than {MAX_LIST_DEPTH}", current.offset())
                sublists = []
                for i in range(count):
                    sublist = self._cell(self._absolute(current.unpack_dword(0x4 + 4 * i))).child()
                    if sublist.offset() in seen:
                        raise HiveFormatError(f"ri list at offset {current.offset()} refers "
                                              f"back to list at offset {sublist.offset()}",
                                              current.offset())
                    seen.add(sublist.offset())
                    sublists.append((sublist, depth + 1))
                pending.extend(reversed(sublists))
                continue

            if isinstance(current, RegistryParse.LIRecord):
                stride = 4
            elif isinstance(current, (RegistryParse.LFRecord, RegistryParse.LHRecord)):
                stride = 8
            else:
                raise RegistryParse.ParseException(f"unsupported subkey list at {current.offset()}")

            offsets.extend(self._absolute(current.unpack_dword(0x4 + stride * i))
                           for i in range(count))

        return offsets

    # Navigation

    def root(self) -> HiveNode:
        return self._root

    def get_children(self, node: HiveNode) -> Iterator[HiveNode]:
        record = self._record(node)
        try:
            offsets = self._subkey_offsets(record)
        except PARSE_ERRORS as e:
            raise HiveFormatError(f"bad subkey list of node {node.handle}: {e}", node.handle) from e
        return _EntryIterator(offsets, self._build_node, "subkey")

    def get_values(self, node: HiveNode) -> Iterator[HiveValue]:
        record = self._record(node)
        try:
            count = record.values_number()
            if count == 0:
                offsets = []
            else:
                values_list = record.values_list()
                offsets = [self._absolute(values_list.unpack_dword(4 * i)) for i in range(count)]
        except PARSE_ERRORS as e:
            raise HiveFormatError(f"bad value list of node {node.handle}: {e}", node.handle) from e
        return _EntryIterator(offsets, self._build_value, "value")

    # Introspection

    def last_modified(self) -> Optional[int]:
        return self._regf.unpack_qword(REGF_TIMESTAMP) or None

    def node_timestamp(self, node: HiveNode) -> Optional[int]:
        return self._record(node).unpack_qword(0x4) or None

    def node_struct_length(self, node: HiveNode) -> int:
        return NK_FIXED_SIZE + self._record(node).unpack_word(0x48)

    def value_struct_length(self, value: HiveValue) -> int:
        return VK_FIXED_SIZE + self._value_record(value).unpack_word(0x2)

    def value_data_cell_offset(self, value: HiveValue) -> Tuple[int, int]:
        record = self._value_record(value)
        try:
            raw_length = record.unpack_dword(0x4)
            if raw_length & DATA_INLINE_FLAG:
                return 0, 0
            return self._absolute(record.unpack_dword(0x8)), (raw_length & DATA_LENGTH_MASK) + 4
        except PARSE_ERRORS as e:
            raise ProvenanceError(f"cannot read data cell of value {value.handle}: {e}",
                                  value.handle) from e

    # Lifecycle

    def close(self) -> None:
        """Unmap the hive and close its file. Closing twice is a no-op."""
        buf, fileobj = self._buf, self._file
        self._buf, self._file = None, None
        try:
            if isinstance(buf, mmap.mmap):
                buf.close()
            if fileobj is not None:
                fileobj.close()
        except (OSError, BufferError) as e:
            raise HiveCloseError(f"{self.path}: {e}") from e
