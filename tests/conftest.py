"""Shared fixtures for the dispatch test suite."""

from __future__ import annotations

import pytest


@pytest.fixture
def anyio_backend():
  # The engine relies on asyncio primitives (Semaphore, wait_for, to_thread).
  return "asyncio"
