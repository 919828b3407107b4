"""
Relay loops between the MQTT broker and the Zenoh session.

``mqtt_receive_loop`` drives the broker event stream and forwards MQTT
messages to Zenoh. ``zenoh_subscribe_loop`` forwards the samples of one Zenoh
subscriber to MQTT. Each loop handles one message at a time, so messages from
a single source keep their order.

Both loops raise on connection failures and rely on the retry supervisor to
start them again. Only ``mqtt_receive_loop`` ever returns, and only when the
broker session was closed on request.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import assert_never

from loguru import logger

from ..datastructures.type_aliases import MqttTopicPattern, TopicPrefix
from .config import RelayedTopic
from .errors import PublisherDeclarationError
from .events import (
    RELAY_QOS,
    MessageReceived,
    PayloadEncoding,
    SessionClosed,
    SessionEstablished,
    TransportError,
)
from .interfaces import BrokerClient, OverlaySubscription
from .publisher_cache import PublisherCache
from .statistics import RelayStatistics
from .topics import to_broker_topic, to_overlay_address

OVERLAY_ENCODING = PayloadEncoding.TEXT_PLAIN


async def mqtt_receive_loop(
    broker: BrokerClient,
    publishers: PublisherCache,
    mqtt_subscriptions: Sequence[MqttTopicPattern],
    mqtt_relay_prefix: TopicPrefix | None,
    statistics: RelayStatistics,
) -> None:
    """Forward broker messages to Zenoh until the session is closed."""
    while True:
        event = await broker.next_event()
        match event:
            case MessageReceived(topic=topic, payload=payload):
                zenoh_topic = to_overlay_address(topic, mqtt_relay_prefix)
                try:
                    publisher = await publishers.get_or_create(zenoh_topic)
                except PublisherDeclarationError as e:
                    statistics.dropped_messages += 1
                    logger.error(f"Dropping message from {topic}: {e}")
                    continue
                # A failing put means the session itself is unhealthy.
                await publisher.put(payload, OVERLAY_ENCODING)
                statistics.mqtt_to_zenoh += 1
            case SessionEstablished():
                logger.info("Connected to MQTT broker. Subscribing to all topics")
                for subscription in mqtt_subscriptions:
                    await broker.subscribe(subscription, RELAY_QOS)
            case SessionClosed():
                logger.info("Client disconnected. Shutting down")
                return
            case TransportError(detail=detail):
                statistics.transport_errors += 1
                logger.warning(f"Error processing event loop notifications: {detail}")
            case _:
                assert_never(event)


async def zenoh_subscribe_loop(
    broker: BrokerClient,
    subscription: OverlaySubscription,
    topic: RelayedTopic,
    statistics: RelayStatistics,
) -> None:
    """Forward the samples of one Zenoh subscriber to MQTT."""
    while True:
        sample = await subscription.recv()
        payload = bytes(sample.payload)
        await broker.publish(
            to_broker_topic(sample), RELAY_QOS, topic.retained, payload
        )
        statistics.zenoh_to_mqtt += 1
