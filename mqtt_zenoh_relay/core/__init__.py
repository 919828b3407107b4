"""Relay core: topic translation, publisher cache, relay loops, supervision."""

from .config import (
    MqttSettings,
    RelayedTopic,
    RelaySettings,
    ZenohSettings,
    load_settings,
)
from .errors import (
    BrokerPublishError,
    BrokerSubscribeError,
    ConfigurationError,
    OverlayPublishError,
    OverlaySubscriptionClosed,
    PublisherDeclarationError,
    RelayError,
    RelayStartupError,
)
from .events import (
    RELAY_QOS,
    BrokerEvent,
    MessageReceived,
    OverlaySample,
    PayloadEncoding,
    QoS,
    SessionClosed,
    SessionEstablished,
    TransportError,
)
from .publisher_cache import PublisherCache
from .relay import MqttZenohRelay
from .statistics import RelayStatistics, RelayStatisticsSnapshot
from .supervisor import RestartPolicy, supervise
from .topics import to_broker_topic, to_overlay_address

__all__ = [
    "RELAY_QOS",
    "BrokerEvent",
    "BrokerPublishError",
    "BrokerSubscribeError",
    "ConfigurationError",
    "MessageReceived",
    "MqttSettings",
    "MqttZenohRelay",
    "OverlayPublishError",
    "OverlaySample",
    "OverlaySubscriptionClosed",
    "PayloadEncoding",
    "PublisherCache",
    "PublisherDeclarationError",
    "QoS",
    "RelayError",
    "RelayStartupError",
    "RelayStatistics",
    "RelayStatisticsSnapshot",
    "RelaySettings",
    "RelayedTopic",
    "RestartPolicy",
    "SessionClosed",
    "SessionEstablished",
    "TransportError",
    "ZenohSettings",
    "load_settings",
    "supervise",
    "to_broker_topic",
    "to_overlay_address",
]
