"""Visitor that serializes a hive traversal to XML.

HiveXMLSerializer is the callback set handed to HiveTraverser. Each node
becomes a ``<node>`` element and each value a ``<value>`` element whose
``type`` attribute and payload encoding depend on the value's shape:

    string / expand / link      decoded text, plain or base64
    string-list                 one <string value=..> child per entry
    bad-string / bad-expand /
    bad-link / bad-string-list  raw undecodable bytes, always base64
    int32 / int64               signed decimal
    binary                      always base64
    none / resource-* / unknown base64, only when the payload is non-empty

Recoverable failures (a missing attribute input, a failed provenance query)
are handed to the error policy, which by default warns on stderr and lets
the callback carry on. Writer failures and type/shape mismatches are never
recovered.
"""

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from ..config import ValueType
from ..core.adapter import HiveAdapter
from ..core.node import HiveNode, HiveValue
from ..core.visitor import HiveVisitor
from ..error_policies import ContinueOnErrorsPolicy, ErrorPolicy
from ..errors import AttributeEmitError, InvariantViolation, ProvenanceError
from .byte_runs import node_byte_runs, value_byte_runs
from .encoding import ENCODING_BASE64, safe_print_string_attribute, write_base64_attribute
from .timestamps import filetime_to_8601
from .writer import DocumentWriter

logger = logging.getLogger(__name__)

STRING_LABELS: Dict[ValueType, str] = {
    ValueType.STRING: "string",
    ValueType.EXPAND_STRING: "expand",
    ValueType.LINK: "link",
}

INVALID_STRING_LABELS: Dict[ValueType, str] = {
    ValueType.STRING: "bad-string",
    ValueType.EXPAND_STRING: "bad-expand",
    ValueType.LINK: "bad-link",
    ValueType.MULTIPLE_STRINGS: "bad-string-list",
}

OTHER_LABELS: Dict[ValueType, str] = {
    ValueType.RESOURCE_LIST: "resource-list",
    ValueType.FULL_RESOURCE_DESCRIPTION: "resource-description",
    ValueType.RESOURCE_REQUIREMENTS_LIST: "resource-requirements",
}

UNKNOWN_LABEL = "unknown"

# Failures a callback survives; everything else propagates
RECOVERABLE_ERRORS = (AttributeEmitError, ProvenanceError)


def _type_label(handler: str, value: HiveValue, labels: Dict[ValueType, str]) -> str:
    """Pick the ``type`` label for a value, rejecting foreign type tags.

    Known type tags missing from ``labels`` belong to another handler.
    Unknown numeric ids are labelled ``unknown``.
    """
    value_type = value.type
    if value_type in labels:
        return labels[value_type]
    if isinstance(value_type, ValueType):
        raise InvariantViolation(handler, value_type, value.decoded)
    return UNKNOWN_LABEL


def _require_type(handler: str, value: HiveValue, allowed: Iterable[ValueType]) -> None:
    if value.type not in allowed:
        raise InvariantViolation(handler, value.type, value.decoded)


def _signed(number: int, bits: int) -> int:
    """Reinterpret the low ``bits`` of ``number`` as a two's complement integer."""
    mask = (1 << bits) - 1
    number &= mask
    if number >> (bits - 1):
        number -= 1 << bits
    return number


def write_mtime(writer: DocumentWriter, windows_ticks: Optional[int]) -> bool:
    """Write an ``<mtime>`` element unless the timestamp is absent.

    Returns:
        True if an element was written
    """
    timebuf = filetime_to_8601(windows_ticks)
    if timebuf is None:
        return False
    writer.start_element("mtime")
    writer.write_string(timebuf)
    writer.end_element()
    return True


class HiveXMLSerializer(HiveVisitor):
    """Callback set turning traversal events into XML elements.

    The writer is passed in explicitly and stays owned by the caller; the
    serializer only appends to the document between the caller's
    ``<hive>`` start and end.
    """

    def __init__(self,
                 adapter: HiveAdapter,
                 writer: DocumentWriter,
                 policy: Optional[ErrorPolicy] = None):
        """Initialize the serializer.

        Args:
            adapter: Engine answering root and provenance queries
            writer: Document writer receiving the elements
            policy: Policy for recoverable failures (default: warn and continue)
        """
        self.adapter = adapter
        self.writer = writer
        self.policy = policy or ContinueOnErrorsPolicy()
        self._root: Optional[HiveNode] = None

    def _recover(self, method_name: str, target: Any, func: Callable, *args: Any) -> Any:
        """Run a helper whose failure should not abort the traversal."""
        try:
            return func(*args)
        except RECOVERABLE_ERRORS as e:
            logger.debug("%s failed for %r: %s", method_name, target, e)
            return self.policy.handle(e, method_name, target)

    def _write_name(self, method_name: str, target: Any, attr_name: str,
                    text: Optional[str], raw: bytes) -> None:
        """Write a name or key attribute; undecodable ones keep their stored bytes."""
        attr_encoding = f"{attr_name}_encoding"
        if text is None and raw:
            write_base64_attribute(self.writer, attr_name, attr_encoding, raw)
            return
        self._recover(method_name, target,
                      safe_print_string_attribute, self.writer, attr_name, attr_encoding, text)

    def _is_root(self, node: HiveNode) -> bool:
        if self._root is None:
            self._root = self.adapter.root()
        return node == self._root

    # Nodes

    def node_start(self, node: HiveNode) -> None:
        writer = self.writer
        writer.start_element("node")

        self._write_name("node_start", node, "name", node.name, node.raw_name)

        if self._is_root(node):
            writer.write_attribute("root", "1")

        last_modified = self._recover("node_timestamp", node, self.adapter.node_timestamp, node)
        write_mtime(writer, last_modified)

        self._recover("node_byte_runs", node, node_byte_runs, self.adapter, writer, node)

    def node_end(self, node: HiveNode) -> None:
        self.writer.end_element()

    # Values

    def start_value(self, value: HiveValue, type_label: str,
                    encoding: Optional[str] = None) -> None:
        """Open ``<value>`` with its type, encoding and key attributes.

        The key is written through the safe attribute path; the node's
        default value (empty key) is marked with ``default="1"`` instead.
        A key the engine could not decode is written from its stored bytes,
        or reported to the policy when there are none.
        """
        writer = self.writer
        writer.start_element("value")
        writer.write_attribute("type", type_label)
        if encoding:
            writer.write_attribute("value_encoding", encoding)
        if value.is_default:
            writer.write_attribute("default", "1")
        else:
            self._write_name("start_value", value, "key", value.key, value.raw_key)

    def end_value(self, value: HiveValue) -> None:
        """Write the value's byte runs and close ``<value>``."""
        self._recover("value_byte_runs", value, value_byte_runs, self.adapter, self.writer, value)
        self.writer.end_element()

    def _write_base64_payload(self, raw: bytes, length: int) -> None:
        writer = self.writer
        writer.start_attribute("value")
        writer.write_base64(raw, 0, length)
        writer.end_attribute()

    def value_string(self, node: HiveNode, value: HiveValue, text: str) -> None:
        type_label = _type_label("value_string", value, STRING_LABELS)
        if not value.decoded:
            raise InvariantViolation("value_string", value.type, decoded=False)

        self.start_value(value, type_label)
        self._recover("value_string", value,
                      safe_print_string_attribute, self.writer, "value", "value_encoding", text)
        self.end_value(value)

    def value_multiple_strings(self, node: HiveNode, value: HiveValue,
                               strings: List[str]) -> None:
        _require_type("value_multiple_strings", value, (ValueType.MULTIPLE_STRINGS,))
        if not value.decoded:
            raise InvariantViolation("value_multiple_strings", value.type, decoded=False)

        writer = self.writer
        self.start_value(value, "string-list")
        for entry in strings:
            writer.start_element("string")
            self._recover("value_multiple_strings", value,
                          safe_print_string_attribute, writer, "value", "value_encoding", entry)
            writer.end_element()
        self.end_value(value)

    def value_string_invalid_utf16(self, node: HiveNode, value: HiveValue,
                                   raw: bytes) -> None:
        type_label = _type_label("value_string_invalid_utf16", value, INVALID_STRING_LABELS)

        self.start_value(value, type_label, ENCODING_BASE64)
        self._write_base64_payload(raw, value.length)
        self.end_value(value)

    def value_dword(self, node: HiveNode, value: HiveValue, number: int) -> None:
        _require_type("value_dword", value, (ValueType.DWORD, ValueType.DWORD_BE))

        self.start_value(value, "int32")
        self.writer.write_attribute("value", "%d" % _signed(number, 32))
        self.end_value(value)

    def value_qword(self, node: HiveNode, value: HiveValue, number: int) -> None:
        _require_type("value_qword", value, (ValueType.QWORD,))

        self.start_value(value, "int64")
        self.writer.write_attribute("value", "%d" % _signed(number, 64))
        self.end_value(value)

    def value_binary(self, node: HiveNode, value: HiveValue, raw: bytes) -> None:
        _require_type("value_binary", value, (ValueType.BINARY,))

        self.start_value(value, "binary", ENCODING_BASE64)
        self._write_base64_payload(raw, value.length)
        self.end_value(value)

    def value_none(self, node: HiveNode, value: HiveValue, raw: bytes) -> None:
        _require_type("value_none", value, (ValueType.NONE,))
        self._write_optional_payload(value, "none", raw)

    def value_other(self, node: HiveNode, value: HiveValue, raw: bytes) -> None:
        type_label = _type_label("value_other", value, OTHER_LABELS)
        self._write_optional_payload(value, type_label, raw)

    def _write_optional_payload(self, value: HiveValue, type_label: str,
                                raw: Union[bytes, bytearray]) -> None:
        """Value whose base64 payload is omitted entirely when empty."""
        has_payload = value.length > 0
        self.start_value(value, type_label, ENCODING_BASE64 if has_payload else None)
        if has_payload:
            self._write_base64_payload(raw, value.length)
        self.end_value(value)
