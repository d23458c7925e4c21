"""Shared fixtures: log directory, temp paths and sample CoT events"""

import os
import shutil
import tempfile
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

# Keep test logs out of the working tree; set before any module calls getLogger()
os.environ.setdefault('LORABRIDGE_LOG_DIR', tempfile.mkdtemp(prefix='lorabridge-logs-'))

import pytest

from cotkit.events import CotEvent

from samples import CHAT_XML, POSITION_XML


@pytest.fixture
def tempDir():
    """Create and cleanup temp directory"""
    dirPath = Path(tempfile.mkdtemp())
    yield dirPath
    shutil.rmtree(dirPath, ignore_errors=True)


@pytest.fixture
def positionEvent():
    return CotEvent.parse(POSITION_XML)


@pytest.fixture
def chatEvent():
    return CotEvent.parse(CHAT_XML)
