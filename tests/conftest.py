"""
Shared test configuration.
"""

import tempfile
from pathlib import Path

import pytest

from phoundation_fs.filesystem import FileSystemConfig, configure


@pytest.fixture(autouse=True)
def isolated_config():
    """Give every test a fresh process wide configuration with an empty mount table."""
    with tempfile.TemporaryDirectory() as tmpdir:
        mount_table = Path(tmpdir) / "mounts"
        mount_table.write_text("")
        yield configure(FileSystemConfig(mount_table=mount_table))
    configure(FileSystemConfig())
