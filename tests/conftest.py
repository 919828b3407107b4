"""Pytest configuration and fixtures for relay testing.

Relay loops run against the in-memory fabrics from
``mqtt_zenoh_relay.transport.memory``; loguru output is captured through a list
sink so tests can assert on what was logged.
"""

import os
from collections.abc import Generator

import pytest
from loguru import logger

from mqtt_zenoh_relay.core.config import (
    ENV_PREFIX,
    MqttSettings,
    RelayedTopic,
    RelaySettings,
    ZenohSettings,
)
from mqtt_zenoh_relay.core.publisher_cache import PublisherCache
from mqtt_zenoh_relay.core.statistics import RelayStatistics
from mqtt_zenoh_relay.transport.memory import InMemoryBroker, InMemoryOverlay


@pytest.fixture(autouse=True)
def clean_settings_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep APP_ overrides from the outer environment out of loaded settings."""
    for name in list(os.environ):
        if name.upper().startswith(ENV_PREFIX):
            monkeypatch.delenv(name)


@pytest.fixture
def broker() -> InMemoryBroker:
    return InMemoryBroker()


@pytest.fixture
def overlay() -> InMemoryOverlay:
    return InMemoryOverlay()


@pytest.fixture
def publishers(overlay: InMemoryOverlay) -> PublisherCache:
    return PublisherCache(overlay.declare_publisher)


@pytest.fixture
def statistics() -> RelayStatistics:
    return RelayStatistics()


@pytest.fixture
def relay_settings() -> RelaySettings:
    """Settings with one retained relayed topic and no prefix."""
    return RelaySettings(
        mqtt=MqttSettings(client_id="test-relay", subscriptions=["#", "lights/+"]),
        zenoh=ZenohSettings(
            relayed_topics=[RelayedTopic(name="temp/#", retained=True)]
        ),
    )


@pytest.fixture
def log_records() -> Generator[list[str], None, None]:
    """Collect every loguru message emitted during the test."""
    records: list[str] = []
    handler_id = logger.add(records.append, level="DEBUG", format="{level} {message}")
    yield records
    logger.remove(handler_id)
