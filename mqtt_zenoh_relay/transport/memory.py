"""
In-memory MQTT broker and Zenoh session (test/local use).

Both classes implement the protocols the relay core consumes. They record
everything published on them and let a caller inject broker events, Zenoh
samples and failures.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from loguru import logger

from ..core.errors import (
    BrokerPublishError,
    BrokerSubscribeError,
    OverlayPublishError,
    OverlaySubscriptionClosed,
    PublisherDeclarationError,
)
from ..core.events import (
    BrokerEvent,
    MessageReceived,
    OverlaySample,
    PayloadEncoding,
    QoS,
    SessionClosed,
    SessionEstablished,
    TransportError,
)
from ..datastructures.type_aliases import (
    KeyExpression,
    KeyExpressionPattern,
    MqttTopic,
    MqttTopicPattern,
    Payload,
)

_FORBIDDEN_KEY_CHARS = frozenset("#?$")


def validate_key_expr(key_expr: KeyExpression) -> str | None:
    """Return why ``key_expr`` is not a valid key expression, or None."""
    if not key_expr:
        return "empty key expression"
    if key_expr.startswith("/") or key_expr.endswith("/"):
        return "key expression must not start or end with '/'"
    if "//" in key_expr:
        return "key expression contains an empty chunk"
    forbidden = _FORBIDDEN_KEY_CHARS.intersection(key_expr)
    if forbidden:
        return f"key expression contains forbidden characters {sorted(forbidden)}"
    return None


def key_expr_matches(pattern: KeyExpressionPattern, key_expr: KeyExpression) -> bool:
    """Match ``key_expr`` against a pattern using ``*`` and ``**`` wildcards."""
    return _match_chunks(pattern.split("/"), key_expr.split("/"))


def _match_chunks(pattern: list[str], chunks: list[str]) -> bool:
    if not pattern:
        return not chunks
    head, rest = pattern[0], pattern[1:]
    if head == "**":
        return any(_match_chunks(rest, chunks[i:]) for i in range(len(chunks) + 1))
    if not chunks:
        return False
    if head == "*" or head == chunks[0]:
        return _match_chunks(rest, chunks[1:])
    return False


@dataclass(frozen=True, slots=True)
class PublishedMessage:
    topic: MqttTopic
    qos: QoS
    retain: bool
    payload: Payload


@dataclass(slots=True)
class InMemoryBroker:
    """MQTT client stand-in driven by a queue of broker events."""

    events: asyncio.Queue[BrokerEvent] = field(default_factory=asyncio.Queue)
    published: list[PublishedMessage] = field(default_factory=list)
    subscriptions: list[tuple[MqttTopicPattern, QoS]] = field(default_factory=list)
    retained: dict[MqttTopic, Payload] = field(default_factory=dict)
    # Number of upcoming calls that fail.
    publish_failures: int = 0
    subscribe_failures: int = 0
    poll_failures: int = 0

    def emit(self, event: BrokerEvent) -> None:
        self.events.put_nowait(event)

    def deliver(self, topic: MqttTopic, payload: Payload) -> None:
        self.emit(MessageReceived(topic=topic, payload=payload))

    def acknowledge_connect(self) -> None:
        self.emit(SessionEstablished())

    def report_error(self, detail: str) -> None:
        self.emit(TransportError(detail=detail))

    async def publish(
        self, topic: MqttTopic, qos: QoS, retain: bool, payload: Payload
    ) -> None:
        if self.publish_failures > 0:
            self.publish_failures -= 1
            raise BrokerPublishError(f"simulated publish failure on {topic}")
        self.published.append(PublishedMessage(topic, qos, retain, payload))
        if retain:
            self.retained[topic] = payload

    async def subscribe(self, pattern: MqttTopicPattern, qos: QoS) -> None:
        if self.subscribe_failures > 0:
            self.subscribe_failures -= 1
            raise BrokerSubscribeError(f"simulated subscribe failure on {pattern}")
        self.subscriptions.append((pattern, qos))

    async def next_event(self) -> BrokerEvent:
        if self.poll_failures > 0:
            self.poll_failures -= 1
            raise ConnectionError("simulated event loop failure")
        return await self.events.get()

    async def disconnect(self) -> None:
        self.emit(SessionClosed())


@dataclass(frozen=True, slots=True)
class OverlayPut:
    key_expr: KeyExpression
    payload: Payload
    encoding: PayloadEncoding


@dataclass(slots=True)
class InMemoryPublisher:
    key_expr: KeyExpression
    overlay: InMemoryOverlay

    async def put(self, payload: Payload, encoding: PayloadEncoding) -> None:
        if self.overlay.put_failures > 0:
            self.overlay.put_failures -= 1
            raise OverlayPublishError(f"simulated put failure on {self.key_expr}")
        self.overlay.puts.append(OverlayPut(self.key_expr, bytes(payload), encoding))


@dataclass(slots=True)
class InMemorySubscription:
    key_expr: KeyExpressionPattern
    _queue: asyncio.Queue[OverlaySample | None] = field(default_factory=asyncio.Queue)
    _closed: bool = False

    def push(self, key_expr: KeyExpression, payload: Payload) -> None:
        self._queue.put_nowait(OverlaySample(key_expr=key_expr, payload=payload))

    def close(self) -> None:
        self._closed = True
        self._queue.put_nowait(None)

    async def recv(self) -> OverlaySample:
        if self._closed and self._queue.empty():
            raise OverlaySubscriptionClosed(self.key_expr)
        sample = await self._queue.get()
        if sample is None:
            raise OverlaySubscriptionClosed(self.key_expr)
        return sample


@dataclass(slots=True)
class InMemoryOverlay:
    """Zenoh session stand-in."""

    publishers: list[InMemoryPublisher] = field(default_factory=list)
    subscriptions: list[InMemorySubscription] = field(default_factory=list)
    puts: list[OverlayPut] = field(default_factory=list)
    rejected_subscriptions: set[KeyExpressionPattern] = field(default_factory=set)
    # Suspends every publisher declaration, to exercise concurrent callers.
    declaration_delay: float = 0.0
    put_failures: int = 0
    closed: bool = False

    async def declare_publisher(self, key_expr: KeyExpression) -> InMemoryPublisher:
        if self.declaration_delay:
            await asyncio.sleep(self.declaration_delay)
        else:
            await asyncio.sleep(0)
        reason = validate_key_expr(key_expr)
        if reason is not None:
            raise PublisherDeclarationError(key_expr, reason)
        publisher = InMemoryPublisher(key_expr=key_expr, overlay=self)
        self.publishers.append(publisher)
        logger.debug(f"Declared in-memory publisher {key_expr}")
        return publisher

    async def declare_subscriber(
        self, key_expr: KeyExpressionPattern
    ) -> InMemorySubscription:
        if key_expr in self.rejected_subscriptions:
            raise ValueError(f"simulated subscriber rejection for {key_expr}")
        subscription = InMemorySubscription(key_expr=key_expr)
        self.subscriptions.append(subscription)
        return subscription

    def subscription_for(self, key_expr: KeyExpressionPattern) -> InMemorySubscription:
        for subscription in self.subscriptions:
            if subscription.key_expr == key_expr:
                return subscription
        raise KeyError(key_expr)

    def publish_sample(self, key_expr: KeyExpression, payload: Payload) -> int:
        """Deliver a sample to every matching subscription."""
        delivered = 0
        for subscription in self.subscriptions:
            if key_expr_matches(subscription.key_expr, key_expr):
                subscription.push(key_expr, payload)
                delivered += 1
        return delivered

    async def close(self) -> None:
        self.closed = True
        for subscription in self.subscriptions:
            subscription.close()
