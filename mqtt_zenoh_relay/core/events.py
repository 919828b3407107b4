"""
Broker events and overlay samples.

The MQTT client surfaces its session as a stream of tagged events. The set of
event kinds is closed: the outbound relay loop matches on every variant of
``BrokerEvent`` and nothing else may appear on the stream.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum

from ..datastructures.type_aliases import KeyExpression, MqttTopic, Payload


class QoS(IntEnum):
    """MQTT quality of service levels."""

    AT_MOST_ONCE = 0
    AT_LEAST_ONCE = 1
    EXACTLY_ONCE = 2


# Best-effort bridge: all subscriptions and publishes on the broker side.
RELAY_QOS = QoS.AT_MOST_ONCE


class PayloadEncoding(Enum):
    """Content encodings attached to overlay publishes."""

    TEXT_PLAIN = "text/plain"


@dataclass(frozen=True, slots=True)
class MessageReceived:
    """A PUBLISH delivered by the broker."""

    topic: MqttTopic
    payload: Payload


@dataclass(frozen=True, slots=True)
class SessionEstablished:
    """The broker acknowledged a (re)connect."""

    session_present: bool = False


@dataclass(frozen=True, slots=True)
class SessionClosed:
    """The client disconnected on request."""

    pass


@dataclass(frozen=True, slots=True)
class TransportError:
    """A non-fatal error reported while polling the broker connection."""

    detail: str


type BrokerEvent = MessageReceived | SessionEstablished | SessionClosed | TransportError


@dataclass(frozen=True, slots=True)
class OverlaySample:
    """A sample received from a Zenoh subscriber."""

    key_expr: KeyExpression
    payload: Payload
