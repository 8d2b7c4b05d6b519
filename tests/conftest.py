"""Root conftest.py for test configuration.

Ensures local src/ directory takes priority over any installed packages.
"""

import sys
from pathlib import Path

import pytest

# Insert local src directory at the beginning of sys.path
# This ensures that the local covguard package is used, not any installed one
_src_dir = Path(__file__).parent.parent / "src"
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

# Force reimport of covguard modules if already imported
for module_name in list(sys.modules.keys()):
    if module_name.startswith("covguard"):
        del sys.modules[module_name]


@pytest.fixture
def write_module(tmp_path: Path):
    """Write a module file under tmp_path and return its absolute path."""

    def _write(relpath: str, source: str) -> str:
        path = tmp_path / relpath
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(source)
        return str(path)

    return _write
