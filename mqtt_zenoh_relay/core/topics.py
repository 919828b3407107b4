"""Topic translation between the MQTT and Zenoh namespaces."""

from __future__ import annotations

from ..datastructures.type_aliases import (
    DestinationAddress,
    MqttTopic,
    TopicPrefix,
)
from .events import OverlaySample


def to_overlay_address(
    mqtt_topic: MqttTopic, prefix: TopicPrefix | None
) -> DestinationAddress:
    """Key expression an MQTT message is republished on."""
    if prefix is None:
        return mqtt_topic
    return f"{prefix}/{mqtt_topic}"


def to_broker_topic(sample: OverlaySample) -> MqttTopic:
    """MQTT topic a Zenoh sample is republished on.

    The key expression is used verbatim. The outgoing prefix is never stripped
    here, so a sample relayed MQTT -> Zenoh -> MQTT keeps its prefix.
    """
    return sample.key_expr
