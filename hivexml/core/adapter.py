"""HiveAdapter abstraction for hivexml.

The HiveAdapter is the traversal engine contract. It knows how to navigate a
specific hive representation (a regf file, an in-memory fixture) and answers
the introspection queries used for provenance, decoupling the XML serializer
from the binary format.
"""

from abc import ABC, abstractmethod
from typing import Iterator, Optional, Tuple

from .node import HiveNode, HiveValue


class HiveAdapter(ABC):
    """Abstract adapter for navigating and introspecting a registry hive.

    While HiveNode and HiveValue are just handles, the adapter knows HOW to
    enumerate them and where they live in the underlying store.

    Adapters are context managers; leaving the ``with`` block releases the
    store through close().
    """

    # Navigation

    @abstractmethod
    def root(self) -> HiveNode:
        """Return the root node of the hive."""
        pass

    @abstractmethod
    def get_children(self, node: HiveNode) -> Iterator[HiveNode]:
        """Get an iterator of the subkeys of the given node.

        Raises:
            HiveFormatError: If a subkey entry is malformed. Entries yielded
                before the error remain valid.
        """
        pass

    @abstractmethod
    def get_values(self, node: HiveNode) -> Iterator[HiveValue]:
        """Get an iterator of the values attached to the given node.

        Values whose text payload does not decode are still yielded, with
        ``decoded`` set to False.

        Raises:
            HiveFormatError: If a value entry is malformed
        """
        pass

    # Introspection, used only for provenance

    @abstractmethod
    def last_modified(self) -> Optional[int]:
        """Return the hive header's timestamp in FILETIME ticks, or None."""
        pass

    @abstractmethod
    def node_timestamp(self, node: HiveNode) -> Optional[int]:
        """Return the node's last-written timestamp in FILETIME ticks, or None."""
        pass

    @abstractmethod
    def node_struct_length(self, node: HiveNode) -> int:
        """Return the size of the node's own descriptor in the store.

        Raises:
            InvalidHandleError: If the handle is not a node
        """
        pass

    @abstractmethod
    def value_struct_length(self, value: HiveValue) -> int:
        """Return the size of the value's own descriptor in the store.

        Raises:
            InvalidHandleError: If the handle is not a value
        """
        pass

    @abstractmethod
    def value_data_cell_offset(self, value: HiveValue) -> Tuple[int, int]:
        """Return ``(offset, length)`` of the value's out-of-line data cell.

        Data stored inline in the descriptor yields ``(0, 0)``.

        Raises:
            InvalidHandleError: If the handle is not a value
            ProvenanceError: If the data cell cannot be located
        """
        pass

    # Lifecycle

    def close(self) -> None:
        """Release the underlying store.

        Raises:
            HiveCloseError: If releasing the store fails
        """
        pass

    def is_root(self, node: HiveNode) -> bool:
        """Check whether the node is the traversal root."""
        return node == self.root()

    def __enter__(self) -> 'HiveAdapter':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
