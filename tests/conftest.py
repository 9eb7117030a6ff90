# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Shared pytest fixtures."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path

import pytest
from fakes import FakeLauncher, WorkspaceFactory

from lintwatch.logging import PACKAGE_LOGGER


@pytest.fixture
def make_workspace(tmp_path: Path) -> WorkspaceFactory:
    """Return a factory creating isolated workspaces."""
    return WorkspaceFactory(tmp_path)


@pytest.fixture
def launcher() -> FakeLauncher:
    """Return a scripted process launcher."""
    return FakeLauncher()


@pytest.fixture(autouse=True)
def _restore_package_logger() -> Iterator[None]:
    """Undo handler changes made by ``configure_logging`` during CLI tests."""

    logger = logging.getLogger(PACKAGE_LOGGER)
    handlers = list(logger.handlers)
    propagate = logger.propagate
    level = logger.level
    configured = getattr(logger, "_lintwatch_configured", False)
    yield
    logger.handlers[:] = handlers
    logger.propagate = propagate
    logger.setLevel(level)
    setattr(logger, "_lintwatch_configured", configured)
