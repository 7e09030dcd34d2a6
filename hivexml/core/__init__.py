"""Core abstractions: handles, the engine contract, visitor and traverser."""

from .node import HiveNode, HiveValue
from .adapter import HiveAdapter
from .visitor import HiveVisitor, classify_value
from .traverser import HiveTraverser

__all__ = [
    'HiveNode',
    'HiveValue',
    'HiveAdapter',
    'HiveVisitor',
    'classify_value',
    'HiveTraverser',
]
