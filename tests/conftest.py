"""
Pytest configuration.

The project uses a ``src/`` layout with several top-level packages
(``common``, ``classifier``, ``extraction``, ``summarizer``, ``ocr`` and
``pipeline``). Tests normally run against an editable install
(``pip install -e .[test]``); when the packages cannot be imported that way,
``src/`` is added to ``sys.path`` so the suite still runs from a checkout.
"""

from __future__ import annotations

import sys
from pathlib import Path


def _ensure_src_on_path() -> None:
    try:
        import common  # noqa: F401
        return
    except ModuleNotFoundError:
        pass

    repo_root = Path(__file__).resolve().parents[1]
    src_dir = repo_root / "src"
    sys.path.insert(0, str(src_dir))


_ensure_src_on_path()
