"""Shared fixtures for the transfer layer tests."""

from __future__ import annotations

import logging

import pytest


@pytest.fixture
def download_logger(caplog) -> logging.Logger:
    """Logger whose INFO records are captured by ``caplog``."""

    caplog.set_level(logging.INFO, logger="transfer-io-test")
    logger = logging.getLogger("transfer-io-test")
    logger.setLevel(logging.INFO)
    return logger
