"""hivexml - Windows Registry hive to XML converter.

hivexml walks a registry hive and writes it out as an XML document that
keeps the forensic detail of the original: last-written times, the file
offsets and sizes of every key and value record, and the exact bytes of
anything that is not printable text.

    from hivexml import hive_to_xml

    with open("system.xml", "wb") as f:
        hive_to_xml("SYSTEM", f)

The pieces can also be used on their own: HiveAdapter is the engine
contract, HiveTraverser drives any HiveVisitor over it, and
HiveXMLSerializer is the visitor that produces the XML.
"""

__version__ = "0.3.0"

from .config import ValueShape, ValueType, VisitConfig
from .errors import (
    AttributeEmitError,
    HiveCloseError,
    HiveError,
    HiveFormatError,
    HiveOpenError,
    HiveXMLError,
    InvalidHandleError,
    InvariantViolation,
    ProvenanceError,
    TraversalAborted,
    XMLWriteError,
)
from .error_policies import (
    CollectErrorsPolicy,
    ContinueOnErrorsPolicy,
    ErrorPolicy,
    FailFastPolicy,
    ThresholdPolicy,
)
from .core import HiveAdapter, HiveNode, HiveTraverser, HiveValue, HiveVisitor, classify_value
from .xml import DocumentWriter, HiveXMLSerializer, filetime_to_8601
from .adapters import RegistryHiveAdapter
from .api import hive_to_xml, open_hive

__all__ = [
    "__version__",
    # Entry points
    "hive_to_xml",
    "open_hive",
    # Configuration
    "VisitConfig",
    "ValueType",
    "ValueShape",
    # Core
    "HiveAdapter",
    "HiveNode",
    "HiveValue",
    "HiveVisitor",
    "HiveTraverser",
    "classify_value",
    "RegistryHiveAdapter",
    # XML
    "DocumentWriter",
    "HiveXMLSerializer",
    "filetime_to_8601",
    # Error handling
    "ErrorPolicy",
    "FailFastPolicy",
    "ContinueOnErrorsPolicy",
    "CollectErrorsPolicy",
    "ThresholdPolicy",
    "HiveXMLError",
    "HiveError",
    "HiveOpenError",
    "HiveCloseError",
    "HiveFormatError",
    "TraversalAborted",
    "ProvenanceError",
    "InvalidHandleError",
    "XMLWriteError",
    "AttributeEmitError",
    "InvariantViolation",
]
