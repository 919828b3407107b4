"""Protocols for the fabric clients consumed by the relay core."""

from __future__ import annotations

from typing import Protocol

from ..datastructures.type_aliases import (
    KeyExpression,
    KeyExpressionPattern,
    MqttTopic,
    MqttTopicPattern,
    Payload,
)
from .events import BrokerEvent, OverlaySample, PayloadEncoding, QoS


class BrokerClient(Protocol):
    """An already configured MQTT client."""

    async def publish(
        self, topic: MqttTopic, qos: QoS, retain: bool, payload: Payload
    ) -> None: ...

    async def subscribe(self, pattern: MqttTopicPattern, qos: QoS) -> None: ...

    async def next_event(self) -> BrokerEvent:
        """Wait for the next session event."""
        ...

    async def disconnect(self) -> None:
        """Request a clean disconnect; yields ``SessionClosed`` on the stream."""
        ...


class PublishHandle(Protocol):
    """A publisher bound to a single key expression."""

    async def put(self, payload: Payload, encoding: PayloadEncoding) -> None: ...


class OverlaySubscription(Protocol):
    async def recv(self) -> OverlaySample:
        """Wait for the next sample."""
        ...


class OverlaySession(Protocol):
    """An open Zenoh session."""

    async def declare_publisher(self, key_expr: KeyExpression) -> PublishHandle: ...

    async def declare_subscriber(
        self, key_expr: KeyExpressionPattern
    ) -> OverlaySubscription: ...

    async def close(self) -> None: ...
