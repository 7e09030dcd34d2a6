"""Streaming XML document writer.

DocumentWriter exposes the call-by-call writer contract the serializer is
written against (start/end element, attributes, base64 attribute content,
text) on top of lxml's incremental ``etree.xmlfile`` writer. Nothing beyond
the currently open start tag is held in memory; the document is streamed to
the output as it is produced.

Every call either succeeds or raises XMLWriteError. A streamed document
cannot be repaired, so callers treat that error as fatal.
"""

import base64
import functools
import logging
from typing import Any, BinaryIO, Callable, Dict, List, Optional, Union

from lxml import etree

from ..errors import XMLWriteError

logger = logging.getLogger(__name__)

# Failures lxml and the output stream can raise while writing
_WRITE_FAILURES = (etree.LxmlError, ValueError, TypeError, OSError)


def _xml_check(operation: str) -> Callable:
    """Wrap a writer method so that any failure becomes XMLWriteError.

    Args:
        operation: Name reported in the diagnostic
    """
    def decorator(method: Callable) -> Callable:
        @functools.wraps(method)
        def wrapper(self, *args, **kwargs):
            try:
                return method(self, *args, **kwargs)
            except XMLWriteError:
                raise
            except _WRITE_FAILURES as e:
                raise XMLWriteError(operation, e) from e
        return wrapper
    return decorator


class DocumentWriter:
    """Incremental XML writer with a libxml2 text-writer style API.

    A start tag stays open after start_element() so that attributes can be
    added one at a time; it is flushed by the first child element, text, or
    end_element(). Attribute content may be supplied as base64 through
    start_attribute() / write_base64() / end_attribute().

    Example:
        with DocumentWriter(sys.stdout.buffer) as writer:
            writer.start_document()
            writer.start_element("hive")
            writer.write_attribute("version", "1")
            writer.end_element()
            writer.end_document()
    """

    def __init__(self, output: Union[BinaryIO, str], encoding: str = "utf-8"):
        """Initialize the writer.

        Args:
            output: Binary file object or filename receiving the document
            encoding: Document encoding declared in the XML declaration
        """
        self.output = output
        self.encoding = encoding
        self._xmlfile: Any = None
        self._xf: Any = None
        self._open: List[Any] = []
        self._pending: Optional[List[Any]] = None
        self._attribute: Optional[List[Any]] = None
        self._finished = False

    @property
    def depth(self) -> int:
        """Number of elements currently open, including a pending one."""
        return len(self._open) + (1 if self._pending is not None else 0)

    # Document

    @_xml_check("start_document")
    def start_document(self) -> None:
        """Open the output and write the XML declaration."""
        if self._xmlfile is not None or self._finished:
            raise XMLWriteError("start_document: document already started")
        self._xmlfile = etree.xmlfile(self.output, encoding=self.encoding)
        self._xf = self._xmlfile.__enter__()
        self._xf.write_declaration()

    @_xml_check("end_document")
    def end_document(self) -> None:
        """Close every open element and finish the document."""
        self._require_document("end_document")
        while self.depth:
            self.end_element()
        xmlfile, self._xmlfile, self._xf = self._xmlfile, None, None
        self._finished = True
        xmlfile.__exit__(None, None, None)
        logger.debug("XML document finished")

    # Elements

    @_xml_check("start_element")
    def start_element(self, name: str) -> None:
        """Open an element; its start tag accepts attributes until flushed."""
        self._require_document("start_element")
        self._flush_pending()
        self._pending = [name, {}]

    @_xml_check("end_element")
    def end_element(self) -> None:
        """Close the innermost open element."""
        self._require_document("end_element")
        if self._attribute is not None:
            raise XMLWriteError("end_element: attribute still open")
        self._flush_pending()
        if not self._open:
            raise XMLWriteError("end_element: no open element")
        self._open.pop().__exit__(None, None, None)

    # Attributes

    @_xml_check("write_attribute")
    def write_attribute(self, name: str, value: str) -> None:
        """Add an attribute to the start tag that is still open."""
        attributes = self._pending_attributes("write_attribute")
        if name in attributes:
            raise XMLWriteError(f"write_attribute: duplicate attribute {name!r}")
        attributes[name] = value

    @_xml_check("start_attribute")
    def start_attribute(self, name: str) -> None:
        """Begin an attribute whose content is written with write_base64()."""
        self._pending_attributes("start_attribute")
        if self._attribute is not None:
            raise XMLWriteError("start_attribute: attribute already open")
        self._attribute = [name, bytearray()]

    @_xml_check("write_base64")
    def write_base64(self, data: bytes, start: int = 0, length: Optional[int] = None) -> None:
        """Append ``data[start:start + length]`` to the open attribute.

        The bytes are encoded as one base64 run when the attribute ends.
        """
        if self._attribute is None:
            raise XMLWriteError("write_base64: no open attribute")
        end = len(data) if length is None else start + length
        self._attribute[1].extend(data[start:end])

    @_xml_check("end_attribute")
    def end_attribute(self) -> None:
        """Finish the attribute opened by start_attribute()."""
        if self._attribute is None:
            raise XMLWriteError("end_attribute: no open attribute")
        name, content = self._attribute
        self._attribute = None
        self.write_attribute(name, base64.b64encode(bytes(content)).decode("ascii"))

    # Text

    @_xml_check("write_string")
    def write_string(self, text: str) -> None:
        """Write escaped character data inside the innermost element."""
        self._require_document("write_string")
        self._flush_pending()
        if not self._open:
            raise XMLWriteError("write_string: text outside the root element")
        self._xf.write(text)

    # Internal helpers

    def _require_document(self, operation: str) -> None:
        if self._xf is None:
            raise XMLWriteError(f"{operation}: document not started")

    def _pending_attributes(self, operation: str) -> Dict[str, str]:
        if self._pending is None:
            raise XMLWriteError(f"{operation}: no start tag open for attributes")
        return self._pending[1]

    def _flush_pending(self) -> None:
        """Write the open start tag with the attributes gathered so far."""
        if self._pending is None:
            return
        if self._attribute is not None:
            raise XMLWriteError("flush: attribute still open")
        name, attributes = self._pending
        self._pending = None
        element = self._xf.element(name, attributes)
        element.__enter__()
        self._open.append(element)

    # Context manager

    def __enter__(self) -> 'DocumentWriter':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Release the output; an unfinished document is left truncated."""
        if self._xmlfile is not None:
            xmlfile, self._xmlfile, self._xf = self._xmlfile, None, None
            self._open = []
            self._pending = None
            self._attribute = None
            try:
                xmlfile.__exit__(exc_type or XMLWriteError, exc_val, exc_tb)
            except _WRITE_FAILURES:
                logger.debug("error while releasing an unfinished XML document", exc_info=True)
