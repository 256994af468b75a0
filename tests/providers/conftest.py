# tests/providers/conftest.py
"""Shared fixtures for provider tests."""

import pytest

from llmgate.models import ProviderConfig
from llmgate.observability.collector import MetricsCollector
from llmgate.providers.static_provider import StaticProvider


@pytest.fixture
def collector():
    c = MetricsCollector()
    yield c
    c.close()


@pytest.fixture
def subscription(collector):
    """Subscription receiving every event recorded on ``collector``."""
    sub = collector.subscribe(buffer_size=1000)
    yield sub
    sub.unsubscribe()


@pytest.fixture
def drain():
    """Returns a function emptying a subscription into a list."""

    def _drain(sub):
        events = []
        while True:
            event = sub.get_nowait()
            if event is None:
                return events
            events.append(event)

    return _drain


@pytest.fixture
def make_static(collector):
    """Factory for static providers attached to ``collector``."""

    def _make(name, attach=True, **settings):
        config = ProviderConfig(name=name, type="static", provider_config=settings)
        return StaticProvider(config, metrics_collector=collector if attach else None)

    return _make
