"""Visitor callback set for hivexml.

A HiveVisitor receives node enter/exit events and one callback per value
shape. The routing from a value's type tag to its shape lives in one place,
visit_value(), so every (type, decoded) pairing lands in exactly one
callback.
"""

from abc import ABC, abstractmethod
from typing import List

from ..config import STRING_TYPES, ValueShape, ValueType
from ..errors import InvariantViolation
from .node import HiveNode, HiveValue


def classify_value(value: HiveValue) -> ValueShape:
    """Select the XML shape for a value from its type tag and decode status.

    Args:
        value: Value handed over by the traversal engine

    Returns:
        The shape whose callback must serialize the value

    Raises:
        InvariantViolation: If a non-string type is flagged as undecodable
    """
    value_type = value.type

    if not value.decoded:
        if value_type in STRING_TYPES:
            return ValueShape.STRING_INVALID
        raise InvariantViolation("classify_value", value_type, decoded=False)

    if value_type in (ValueType.STRING, ValueType.EXPAND_STRING, ValueType.LINK):
        return ValueShape.STRING
    if value_type == ValueType.MULTIPLE_STRINGS:
        return ValueShape.MULTIPLE_STRINGS
    if value_type in (ValueType.DWORD, ValueType.DWORD_BE):
        return ValueShape.DWORD
    if value_type == ValueType.QWORD:
        return ValueShape.QWORD
    if value_type == ValueType.BINARY:
        return ValueShape.BINARY
    if value_type == ValueType.NONE:
        return ValueShape.NONE
    # Resource kinds and ids we have no name for
    return ValueShape.OTHER


class HiveVisitor(ABC):
    """Abstract callback set driven by HiveTraverser.

    Subclasses implement node_start/node_end and the value shape callbacks.
    Callbacks signal failure by raising; any exception that escapes a
    callback aborts the traversal.
    """

    @abstractmethod
    def node_start(self, node: HiveNode) -> None:
        """Called when the traversal enters a node, before its values."""
        pass

    @abstractmethod
    def node_end(self, node: HiveNode) -> None:
        """Called after the node's values and all of its subkeys."""
        pass

    def visit_value(self, node: HiveNode, value: HiveValue) -> None:
        """Dispatch a value to the callback for its shape."""
        shape = classify_value(value)

        if shape is ValueShape.STRING:
            self.value_string(node, value, value.data)
        elif shape is ValueShape.MULTIPLE_STRINGS:
            self.value_multiple_strings(node, value, value.strings())
        elif shape is ValueShape.STRING_INVALID:
            self.value_string_invalid_utf16(node, value, value.raw)
        elif shape is ValueShape.DWORD:
            self.value_dword(node, value, value.data)
        elif shape is ValueShape.QWORD:
            self.value_qword(node, value, value.data)
        elif shape is ValueShape.BINARY:
            self.value_binary(node, value, value.raw)
        elif shape is ValueShape.NONE:
            self.value_none(node, value, value.raw)
        elif shape is ValueShape.OTHER:
            self.value_other(node, value, value.raw)
        else:
            raise InvariantViolation("visit_value", value.type, value.decoded)

    @abstractmethod
    def value_string(self, node: HiveNode, value: HiveValue, text: str) -> None:
        """A successfully decoded REG_SZ, REG_EXPAND_SZ or REG_LINK."""
        pass

    @abstractmethod
    def value_multiple_strings(self, node: HiveNode, value: HiveValue,
                               strings: List[str]) -> None:
        """A successfully decoded REG_MULTI_SZ."""
        pass

    @abstractmethod
    def value_string_invalid_utf16(self, node: HiveNode, value: HiveValue,
                                   raw: bytes) -> None:
        """A string-typed value whose payload is not valid UTF-16."""
        pass

    @abstractmethod
    def value_dword(self, node: HiveNode, value: HiveValue, number: int) -> None:
        """A REG_DWORD or REG_DWORD_BIG_ENDIAN."""
        pass

    @abstractmethod
    def value_qword(self, node: HiveNode, value: HiveValue, number: int) -> None:
        """A REG_QWORD."""
        pass

    @abstractmethod
    def value_binary(self, node: HiveNode, value: HiveValue, raw: bytes) -> None:
        """A REG_BINARY."""
        pass

    @abstractmethod
    def value_none(self, node: HiveNode, value: HiveValue, raw: bytes) -> None:
        """A REG_NONE."""
        pass

    @abstractmethod
    def value_other(self, node: HiveNode, value: HiveValue, raw: bytes) -> None:
        """Resource descriptors and types with no dedicated callback."""
        pass
