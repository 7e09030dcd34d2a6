"""Builder for small regf hive images used by the file engine tests.

Only the structures the engine reads are filled in: the header, one hbin,
nk records with lf/lh/li/ri subkey lists, value lists, vk records and db
large-data records.
"""

import struct

HBIN_START = 0x1000
HBIN_HEADER_SIZE = 0x20
NO_OFFSET = 0xFFFFFFFF

NK_FLAG_ROOT = 0x0004
NK_FLAG_ASCII_NAME = 0x0020
VK_FLAG_ASCII_NAME = 0x0001
DATA_INLINE = 0x80000000

# Payload bytes held by one db segment
DB_SEGMENT_SIZE = 0x3FD8


def _name(name, ascii_flag):
    """Names given as bytes are stored as-is (UTF-16LE, no ASCII flag)."""
    if isinstance(name, bytes):
        return name, 0
    return name.encode("latin-1"), ascii_flag


class HiveImage:
    """Lays out cells in one hbin; offsets returned are hbin-relative."""

    def __init__(self, timestamp=0):
        self.timestamp = timestamp
        self.cells = bytearray()

    @property
    def next_offset(self):
        """Offset the next cell will be placed at."""
        return HBIN_HEADER_SIZE + len(self.cells)

    def cell(self, payload):
        """Append an allocated cell and return its hbin-relative offset."""
        size = (len(payload) + 4 + 7) & ~7
        offset = self.next_offset
        self.cells += struct.pack("<i", -size) + payload
        self.cells += b"\x00" * (size - 4 - len(payload))
        return offset

    def _vk(self, name, value_type, length, data_offset):
        name_bytes, flags = _name(name, VK_FLAG_ASCII_NAME)
        record = b"vk" + struct.pack("<HIIIHH", len(name_bytes), length, data_offset,
                                     value_type, flags, 0) + name_bytes
        return self.cell(record)

    def value(self, name, value_type, data):
        """Add a vk record; payloads of up to 4 bytes are stored inline."""
        if len(data) <= 4:
            length = len(data) | DATA_INLINE
            data_offset = struct.unpack("<I", data.ljust(4, b"\x00"))[0]
        else:
            length = len(data)
            data_offset = self.cell(data)
        return self._vk(name, value_type, length, data_offset)

    def large_value(self, name, value_type, data):
        """Add a vk record whose payload is split into db segments."""
        segments = [self.cell(data[i:i + DB_SEGMENT_SIZE])
                    for i in range(0, len(data), DB_SEGMENT_SIZE)]
        blocklist = self.cell(b"".join(struct.pack("<I", s) for s in segments))
        db = self.cell(b"db" + struct.pack("<HI", len(segments), blocklist))
        return self._vk(name, value_type, len(data), db)

    def subkey_list(self, subkeys, kind="lf"):
        """Add an lf, lh or li list of nk offsets."""
        if kind == "li":
            entries = b"".join(struct.pack("<I", k) for k in subkeys)
        else:
            entries = b"".join(struct.pack("<I4s", k, b"\x00" * 4) for k in subkeys)
        return self.cell(kind.encode("ascii") + struct.pack("<H", len(subkeys)) + entries)

    def ri_list(self, lists):
        """Add an ri list pointing at other subkey lists."""
        entries = b"".join(struct.pack("<I", l) for l in lists)
        return self.cell(b"ri" + struct.pack("<H", len(lists)) + entries)

    def key(self, name, timestamp=0, subkeys=(), values=(), root=False,
            subkey_list=None, subkey_count=None):
        """Add an nk record with its value list and subkey list.

        ``subkeys`` get an lf list; pass ``subkey_list`` and ``subkey_count``
        to point the key at a list built separately.
        """
        values_list = NO_OFFSET
        if values:
            values_list = self.cell(b"".join(struct.pack("<I", v) for v in values))

        if subkey_list is None:
            subkey_list = self.subkey_list(subkeys) if subkeys else NO_OFFSET
        if subkey_count is None:
            subkey_count = len(subkeys)

        name_bytes, flags = _name(name, NK_FLAG_ASCII_NAME)
        if root:
            flags |= NK_FLAG_ROOT
        record = b"nk" + struct.pack(
            "<HQ15IHH", flags, timestamp,
            0, 0, subkey_count, 0, subkey_list, NO_OFFSET,
            len(values), values_list, NO_OFFSET, NO_OFFSET,
            0, 0, 0, 0, 0,
            len(name_bytes), 0) + name_bytes
        return self.cell(record)

    def build(self, root):
        """Return the complete file image with ``root`` as the root key."""
        hbin_size = (HBIN_HEADER_SIZE + len(self.cells) + 0xFFF) & ~0xFFF
        hbin = bytearray(b"hbin" + struct.pack("<II", 0, hbin_size))
        hbin += b"\x00" * (HBIN_HEADER_SIZE - len(hbin))
        hbin += self.cells
        hbin += b"\x00" * (hbin_size - len(hbin))

        header = bytearray(HBIN_START)
        header[0:4] = b"regf"
        struct.pack_into("<IIQ", header, 0x4, 1, 1, self.timestamp)
        struct.pack_into("<IIIII", header, 0x14, 1, 5, 0, 1, root)
        struct.pack_into("<I", header, 0x28, hbin_size)
        return bytes(header + hbin)
