# === NAVMAP v1 ===
# {
#   "module": "tests.conftest",
#   "purpose": "Shared pytest configuration for the suite",
#   "sections": [
#     {"id": "globals", "name": "Globals", "anchor": "GLB", "kind": "infra"},
#     {"id": "fixtures", "name": "Fixtures", "anchor": "FIX", "kind": "fixtures"}
#   ]
# }
# === /NAVMAP ===

"""
Pytest Configuration

Puts ``src`` on ``sys.path`` so the suite runs against a source checkout, and
keeps the ``LHSM_AZ_*`` environment of the developer's shell from leaking into
configuration tests.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Iterator

import pytest

# --- Globals ---

ROOT = Path(__file__).resolve().parent.parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


# --- Fixtures ---


@pytest.fixture(autouse=True)
def _isolated_lhsm_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Remove ``LHSM_AZ_*`` variables for the duration of each test."""

    for key in list(os.environ):
        if key.upper().startswith("LHSM_AZ_"):
            monkeypatch.delenv(key, raising=False)
    yield


@pytest.fixture(autouse=True)
def _reset_package_logger() -> Iterator[None]:
    """Drop handlers installed by ``setup_logging`` so tests do not share sinks."""

    yield
    logger = logging.getLogger("LemurHSM")
    for handler in list(logger.handlers):
        if getattr(handler, "_lhsm_managed", False):
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(logging.NOTSET)
