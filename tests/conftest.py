"""Shared fixtures for the formulify test suite."""

from __future__ import annotations

import pytest


@pytest.fixture(autouse=True)
def _detach_event_sink():
    """Keep the module-level event sink from leaking between tests."""
    from formulify.logging.events import clear_sink

    clear_sink()
    yield
    clear_sink()
