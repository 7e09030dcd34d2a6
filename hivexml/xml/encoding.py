"""Safe attribute encoding.

Names and decoded strings in a hive are not guaranteed to be printable.
Attributes are written verbatim only when every byte is printable ASCII;
anything else is base64 encoded with a companion ``*_encoding`` attribute
so the original bytes survive the trip through XML.
"""

import logging
from typing import Optional, Union

from ..errors import AttributeEmitError
from .writer import DocumentWriter

logger = logging.getLogger(__name__)

ENCODING_NONE = "none"
ENCODING_BASE64 = "base64"


def _terminated(data: Union[str, bytes]) -> bytes:
    """Return the UTF-8 bytes of ``data`` up to the first NUL."""
    if isinstance(data, str):
        data = data.encode("utf-8", "surrogateescape")
    end = data.find(b"\x00")
    return data if end < 0 else data[:end]


def is_printable(byte: int) -> bool:
    """Locale-independent equivalent of C ``isprint`` on one byte."""
    return 0x20 <= byte <= 0x7E


def encoding_recommendation(data: Union[str, bytes]) -> str:
    """Decide how an attribute value must be written.

    Only the bytes before the first NUL are examined, as the value is
    treated as a null-terminated string.

    Args:
        data: Text (examined as UTF-8) or raw bytes

    Returns:
        ``"none"`` if every byte is printable ASCII, otherwise ``"base64"``
    """
    for i, byte in enumerate(_terminated(data)):
        if not is_printable(byte):
            logger.debug("encoding_recommendation: non-printable character found "
                         "at data index %d (c=%d)", i, byte)
            return ENCODING_BASE64
    return ENCODING_NONE


def safe_print_string_attribute(writer: DocumentWriter,
                                attr_name: Optional[str],
                                attr_encoding: Optional[str],
                                attr_data: Optional[Union[str, bytes]]) -> str:
    """Write ``attr_name`` plainly or as base64 with ``attr_encoding="base64"``.

    Exactly one of two outcomes is written: the attribute with the data
    verbatim, or the encoding marker followed by the base64 attribute.

    Args:
        writer: Document writer with a start tag open
        attr_name: Attribute receiving the data (e.g. "name")
        attr_encoding: Companion attribute naming the encoding (e.g. "name_encoding")
        attr_data: Text to write

    Returns:
        The encoding used, ``"none"`` or ``"base64"``

    Raises:
        AttributeEmitError: If any argument is missing
        XMLWriteError: If the writer fails
    """
    if attr_name is None or attr_encoding is None or attr_data is None:
        raise AttributeEmitError(
            f"cannot write attribute {attr_name!r}: "
            f"{'data' if attr_data is None else 'attribute name'} missing")

    encoding = encoding_recommendation(attr_data)

    if encoding == ENCODING_NONE:
        text = attr_data if isinstance(attr_data, str) else attr_data.decode("ascii")
        writer.write_attribute(attr_name, text.split("\x00", 1)[0])
    else:
        write_base64_attribute(writer, attr_name, attr_encoding, _terminated(attr_data))

    return encoding


def write_base64_attribute(writer: DocumentWriter, attr_name: str, attr_encoding: str,
                           data: bytes) -> None:
    """Write ``attr_encoding="base64"`` followed by all of ``data`` base64 encoded."""
    writer.write_attribute(attr_encoding, ENCODING_BASE64)
    writer.start_attribute(attr_name)
    writer.write_base64(data, 0, len(data))
    writer.end_attribute()
