"""High-level API for hivexml.

This module provides the functional entry points: open a hive and convert a
whole hive to an XML document. They wire together the adapter, traverser,
document writer and serializer for the common case.
"""

import dataclasses
import logging
import os
from typing import Any, BinaryIO, Dict, Optional, Union

from .adapters.registry import RegistryHiveAdapter
from .config import VisitConfig
from .core.adapter import HiveAdapter
from .core.traverser import HiveTraverser
from .errors import HiveCloseError
from .xml.serializer import HiveXMLSerializer, write_mtime
from .xml.writer import DocumentWriter

logger = logging.getLogger(__name__)

HiveSource = Union[str, os.PathLike, HiveAdapter]


def open_hive(path: Union[str, os.PathLike], debug: bool = False) -> RegistryHiveAdapter:
    """Open a regf hive file.

    Args:
        path: Hive file to open
        debug: Trace every record read at DEBUG level

    Raises:
        HiveOpenError: If the file cannot be opened or is not a hive
    """
    return RegistryHiveAdapter.open(os.fspath(path), debug=debug)


def hive_to_xml(hive: HiveSource,
                output: Union[BinaryIO, str],
                config: Optional[VisitConfig] = None,
                **kwargs: Any) -> Dict[str, int]:
    """Convert a whole hive to an XML document.

    The document is streamed to ``output`` as the hive is walked:

        <?xml version='1.0' encoding='utf-8'?>
        <hive>
          <mtime>...</mtime>
          <node name=... root="1"> ... </node>
        </hive>

    The hive is released before ``</hive>`` is written. Adapters passed in
    are released too. If anything fails midway the document is left
    truncated; there is no rollback.

    Args:
        hive: Path of a hive file, or an already open adapter
        output: Binary stream or filename receiving the document
        config: Conversion options (default: VisitConfig())
        **kwargs: Overrides for individual VisitConfig fields

    Returns:
        Traversal counts ('nodes', 'values', 'skipped')

    Raises:
        ValueError: If the configuration is invalid
        HiveOpenError: If the hive cannot be opened
        TraversalAborted: If the walk stopped at a malformed entry
        HiveCloseError: If releasing the hive failed
        XMLWriteError: If writing the document failed
        InvariantViolation: If the engine broke its value type contract

    Example:
        >>> with open("system.xml", "wb") as f:
        ...     hive_to_xml("SYSTEM", f, skip_bad=True)
    """
    if config is None:
        config = VisitConfig.from_kwargs(**kwargs)
    elif kwargs:
        config = dataclasses.replace(config, **kwargs)

    errors = config.validate()
    if errors:
        raise ValueError("invalid configuration: " + "; ".join(errors))

    if isinstance(hive, HiveAdapter):
        adapter = hive
    else:
        adapter = open_hive(hive, debug=config.debug)

    with DocumentWriter(output, encoding=config.encoding) as writer:
        try:
            writer.start_document()
            writer.start_element("hive")
            write_mtime(writer, adapter.last_modified())

            traverser = HiveTraverser(adapter, skip_bad=config.skip_bad,
                                      policy=config.error_policy)
            serializer = HiveXMLSerializer(adapter, writer, policy=config.error_policy)
            stats = traverser.traverse(serializer)
        except BaseException:
            _release_after_failure(adapter)
            raise

        adapter.close()

        writer.end_element()
        writer.end_document()

    logger.debug("hive converted: %d nodes, %d values, %d skipped",
                 stats['nodes'], stats['values'], stats['skipped'])
    return stats


def _release_after_failure(adapter: HiveAdapter) -> None:
    """Close the hive while another error is propagating."""
    try:
        adapter.close()
    except HiveCloseError as e:
        logger.warning("releasing the hive after a failed conversion also failed: %s", e)
