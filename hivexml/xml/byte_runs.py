"""Byte-run provenance for nodes and values.

A byte run records where a logical entity lives in the hive file
(``file_offset`` and ``len``). Every node has one run, its descriptor. Every
value has a run for its descriptor and, when the payload is too large to be
stored inline in the descriptor, a second run for the out-of-line data cell.

All introspection queries are made before anything is written, so a failed
query leaves no partial ``<byte_runs>`` element behind.
"""

from ..core.adapter import HiveAdapter
from ..core.node import HiveNode, HiveValue
from ..errors import InvalidHandleError, ProvenanceError
from .writer import DocumentWriter

# Payloads up to this many bytes live inside the value descriptor
INLINE_DATA_THRESHOLD = 4


def _write_byte_run(writer: DocumentWriter, file_offset: int, length: int) -> None:
    writer.start_element("byte_run")
    writer.write_attribute("file_offset", "%d" % file_offset)
    writer.write_attribute("len", "%d" % length)
    writer.end_element()


def node_byte_runs(adapter: HiveAdapter, writer: DocumentWriter, node: HiveNode) -> None:
    """Emit ``<byte_runs>`` with the node's single descriptor run.

    Raises:
        InvalidHandleError: If the engine says the handle is not a node
        ProvenanceError: If the struct length query fails otherwise
        XMLWriteError: If the writer fails
    """
    try:
        struct_length = adapter.node_struct_length(node)
    except InvalidHandleError as e:
        raise InvalidHandleError(
            f"node_byte_runs: invoked on what does not seem to be a node ({node.handle}): {e}",
            node.handle) from e

    writer.start_element("byte_runs")
    _write_byte_run(writer, node.handle, struct_length)
    writer.end_element()


def value_byte_runs(adapter: HiveAdapter, writer: DocumentWriter, value: HiveValue) -> int:
    """Emit ``<byte_runs>`` for a value's descriptor and data cell.

    Returns:
        Number of runs written (1 or 2)

    Raises:
        InvalidHandleError: If the engine says the handle is not a value
        ProvenanceError: If the data cell cannot be located
        XMLWriteError: If the writer fails
    """
    try:
        struct_length = adapter.value_struct_length(value)
    except InvalidHandleError as e:
        raise InvalidHandleError(
            f"value_byte_runs: invoked on what does not seem to be a value ({value.handle}): {e}",
            value.handle) from e

    try:
        cell_offset, cell_length = adapter.value_data_cell_offset(value)
    except ProvenanceError:
        raise
    except (ValueError, LookupError) as e:
        raise ProvenanceError(
            f"value_byte_runs: cannot locate data cell of value {value.handle}: {e}",
            value.handle) from e

    writer.start_element("byte_runs")
    _write_byte_run(writer, value.handle, struct_length)
    runs = 1

    if cell_length > INLINE_DATA_THRESHOLD:
        _write_byte_run(writer, cell_offset, cell_length)
        runs += 1

    writer.end_element()
    return runs
