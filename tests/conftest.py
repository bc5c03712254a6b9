"""
Pytest Configuration

Puts ``src`` on ``sys.path`` so the suite runs from a plain checkout, and
isolates tests from cached settings and from logging handlers installed by
CLI invocations.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from PkgTools.TransferIO.logging_config import LOGGER_NAME  # noqa: E402
from PkgTools.TransferIO.settings import reset_settings  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_transfer_state():
    """Drop cached settings and managed log handlers around every test."""

    reset_settings()
    yield
    reset_settings()
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if getattr(handler, "_transferio_managed", False):
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(logging.NOTSET)
