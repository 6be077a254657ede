from __future__ import annotations

import sys
from pathlib import Path


def pytest_configure() -> None:
    """Make `import botforge...` work without installing the package."""
    backend_root = Path(__file__).resolve().parent
    if str(backend_root) not in sys.path:
        sys.path.insert(0, str(backend_root))
