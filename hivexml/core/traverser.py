"""Hive traversal for hivexml.

The traverser walks any HiveAdapter depth-first and fires the callbacks of a
HiveVisitor: node_start, the node's values, its subkeys (recursively), then
node_end. It is independent of the hive representation, working only
through the adapter.
"""

import logging
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

from ..error_policies import ContinueOnErrorsPolicy, ErrorPolicy
from ..errors import HiveFormatError, TraversalAborted
from .adapter import HiveAdapter
from .node import HiveNode
from .visitor import HiveVisitor

logger = logging.getLogger(__name__)


class HiveTraverser:
    """Depth-first, pre-order walk of a hive with enter/exit events.

    Malformed entries reported by the adapter (HiveFormatError) abort the
    walk with TraversalAborted unless ``skip_bad`` is set, in which case
    they go to the error policy and the walk continues with the next entry.
    Whether a single entry or the rest of its list is lost depends on
    whether the adapter's iterator can resume after raising.
    """

    def __init__(self,
                 adapter: HiveAdapter,
                 skip_bad: bool = False,
                 policy: Optional[ErrorPolicy] = None):
        """Initialize traverser with an adapter.

        Args:
            adapter: HiveAdapter for navigating the hive
            skip_bad: Skip malformed entries instead of aborting
            policy: Policy receiving skipped entries (default: warn and continue)
        """
        self.adapter = adapter
        self.skip_bad = skip_bad
        self.policy = policy or ContinueOnErrorsPolicy()
        self.stats: Dict[str, int] = {'nodes': 0, 'values': 0, 'skipped': 0}

    def traverse(self, visitor: HiveVisitor) -> Dict[str, int]:
        """Walk the whole hive, invoking the visitor's callbacks.

        Uses an explicit stack rather than recursion so that deeply nested
        hives cannot exhaust the interpreter stack.

        Args:
            visitor: Callback set to drive

        Returns:
            Counts of visited nodes, values and skipped entries

        Raises:
            TraversalAborted: On a malformed entry when not skipping
            Exception: Anything raised by a visitor callback, unchanged
        """
        self.stats = {'nodes': 0, 'values': 0, 'skipped': 0}
        visited: Set[int] = set()

        root = self.adapter.root()
        visited.add(root.handle)
        self._enter(root, visitor)

        stack: List[Tuple[HiveNode, Iterator[HiveNode]]] = [
            (root, self._iter_entries('get_children', root))
        ]

        while stack:
            node, children = stack[-1]
            child = next(children, None)

            if child is None:
                stack.pop()
                visitor.node_end(node)
                continue

            # Skip if already visited (a subkey list pointing back up the tree)
            if child.handle in visited:
                self._malformed(
                    HiveFormatError(f"subkey {child.handle} of node {node.handle} "
                                    f"was already visited", child.handle),
                    'get_children', node)
                continue
            visited.add(child.handle)

            self._enter(child, visitor)
            stack.append((child, self._iter_entries('get_children', child)))

        logger.debug("traversal finished: %d nodes, %d values, %d skipped",
                     self.stats['nodes'], self.stats['values'], self.stats['skipped'])
        return self.stats

    def _enter(self, node: HiveNode, visitor: HiveVisitor) -> None:
        """Fire node_start followed by one callback per value."""
        self.stats['nodes'] += 1
        visitor.node_start(node)
        for value in self._iter_entries('get_values', node):
            self.stats['values'] += 1
            visitor.visit_value(node, value)

    def _iter_entries(self, method_name: str, node: HiveNode) -> Iterator[Any]:
        """Iterate an adapter enumeration, routing malformed entries.

        Args:
            method_name: Adapter method to call ('get_children' or 'get_values')
            node: Node whose entries are enumerated

        Yields:
            Entries produced by the adapter
        """
        try:
            iterator = iter(getattr(self.adapter, method_name)(node))
        except HiveFormatError as e:
            self._malformed(e, method_name, node)
            return

        while True:
            try:
                entry = next(iterator)
            except StopIteration:
                return
            except HiveFormatError as e:
                self._malformed(e, method_name, node)
                continue
            yield entry

    def _malformed(self, error: HiveFormatError, method_name: str, node: HiveNode) -> None:
        """Abort or skip after the adapter reported a malformed entry."""
        if not self.skip_bad:
            raise TraversalAborted(f"{method_name} on node {node.handle}: {error}") from error

        self.stats['skipped'] += 1
        self.policy.handle(error, method_name, node)
