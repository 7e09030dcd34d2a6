"""Shared fixtures for hivexml tests."""

import io
import sys
from pathlib import Path

import pytest
from lxml import etree

sys.path.insert(0, str(Path(__file__).parent.parent))

from hivexml import ContinueOnErrorsPolicy, hive_to_xml
from hivexml.testing import MemoryHive

# 2009-02-13T23:31:30Z (Unix time 1234567890) as a FILETIME
FILETIME_2009 = 128790414900000000

# 1970-01-01T00:00:00Z as a FILETIME
FILETIME_UNIX_EPOCH = 116444736000000000


@pytest.fixture
def hive():
    """A hive holding a root key named "Root" and nothing else."""
    return MemoryHive("Root", timestamp=FILETIME_2009, last_modified=FILETIME_2009)


@pytest.fixture
def convert():
    """Convert a MemoryHive (or adapter) and parse the document back.

    Returns a function ``convert(hive, **options) -> (document, policy)``.
    """
    def _convert(source, **options):
        policy = options.setdefault("error_policy", ContinueOnErrorsPolicy(verbose=False))
        adapter = source.adapter() if isinstance(source, MemoryHive) else source
        output = io.BytesIO()
        hive_to_xml(adapter, output, **options)
        return etree.fromstring(output.getvalue()), policy

    return _convert
