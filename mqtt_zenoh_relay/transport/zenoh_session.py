"""
eclipse-zenoh session adapter.

Builds the Zenoh configuration from ``ZenohSettings`` and wraps the session,
its publishers and its subscribers in the protocols of the relay core.
Subscribers are declared with a callback handler that queues each sample on
the asyncio loop, so any number of relayed key expressions can wait for
samples at once.
"""

from __future__ import annotations

import asyncio
import json

import zenoh
from loguru import logger

from ..core.config import ZenohSettings
from ..core.errors import (
    ConfigurationError,
    OverlayPublishError,
    OverlaySubscriptionClosed,
    PublisherDeclarationError,
    RelayStartupError,
)
from ..core.events import OverlaySample, PayloadEncoding
from ..datastructures.type_aliases import (
    KeyExpression,
    KeyExpressionPattern,
    Payload,
)

_ENCODINGS = {
    PayloadEncoding.TEXT_PLAIN: zenoh.Encoding.TEXT_PLAIN,
}


def build_zenoh_config(settings: ZenohSettings) -> zenoh.Config:
    """Zenoh configuration for the relay session.

    Starts from ``config_file_path`` when set, then overrides the connect and
    listen endpoints when they are configured and turns multicast scouting off
    when asked to.
    """
    try:
        if settings.config_file_path:
            config = zenoh.Config.from_file(settings.config_file_path)
        else:
            config = zenoh.Config()
        if settings.connect:
            config.insert_json5("connect/endpoints", json.dumps(settings.connect))
        if settings.listen:
            config.insert_json5("listen/endpoints", json.dumps(settings.listen))
        if settings.disable_multicast_scouting:
            config.insert_json5("scouting/multicast/enabled", "false")
    except Exception as e:
        raise ConfigurationError(f"Invalid zenoh configuration: {e}") from e
    return config


class ZenohPublishHandle:
    def __init__(self, publisher: zenoh.Publisher) -> None:
        self._publisher = publisher

    @property
    def key_expr(self) -> KeyExpression:
        return str(self._publisher.key_expr)

    async def put(self, payload: Payload, encoding: PayloadEncoding) -> None:
        try:
            self._publisher.put(payload, encoding=_ENCODINGS[encoding])
        except zenoh.ZError as e:
            raise OverlayPublishError(f"Failed to put on {self.key_expr}: {e}") from e

    def undeclare(self) -> None:
        self._publisher.undeclare()


class ZenohSubscription:
    """Samples of one Zenoh subscriber, queued on the asyncio loop.

    Zenoh calls ``on_sample`` from its own threads; each sample is handed to
    the loop with ``call_soon_threadsafe``, so waiting for samples never holds
    a worker thread.
    """

    def __init__(
        self, key_expr: KeyExpressionPattern, loop: asyncio.AbstractEventLoop
    ) -> None:
        self.key_expr = key_expr
        self._loop = loop
        self._queue: asyncio.Queue[OverlaySample | None] = asyncio.Queue()
        self._subscriber: zenoh.Subscriber | None = None
        self._closed = False

    def attach(self, subscriber: zenoh.Subscriber) -> None:
        self._subscriber = subscriber

    def on_sample(self, sample: zenoh.Sample) -> None:
        if self._loop.is_closed():
            return
        overlay_sample = OverlaySample(
            key_expr=str(sample.key_expr), payload=sample.payload.to_bytes()
        )
        self._loop.call_soon_threadsafe(self._queue.put_nowait, overlay_sample)

    async def recv(self) -> OverlaySample:
        if self._closed and self._queue.empty():
            raise OverlaySubscriptionClosed(self.key_expr)
        sample = await self._queue.get()
        if sample is None:
            raise OverlaySubscriptionClosed(self.key_expr)
        return sample

    def undeclare(self) -> None:
        self._closed = True
        if self._subscriber is not None:
            self._subscriber.undeclare()
        self._queue.put_nowait(None)


class ZenohOverlaySession:
    """Overlay session backed by ``zenoh.Session``."""

    def __init__(self, session: zenoh.Session) -> None:
        self._session = session
        self._publishers: list[ZenohPublishHandle] = []
        self._subscriptions: list[ZenohSubscription] = []

    @classmethod
    async def open(cls, settings: ZenohSettings) -> ZenohOverlaySession:
        """Open a Zenoh session.

        Raises:
            ConfigurationError: the settings do not form a valid Zenoh config.
            RelayStartupError: the session could not be opened.
        """
        config = build_zenoh_config(settings)
        try:
            session = await asyncio.to_thread(zenoh.open, config)
        except zenoh.ZError as e:
            raise RelayStartupError(f"Failed to open zenoh session: {e}") from e
        logger.info("Zenoh session open")
        return cls(session)

    async def declare_publisher(self, key_expr: KeyExpression) -> ZenohPublishHandle:
        try:
            publisher = self._session.declare_publisher(key_expr)
        except zenoh.ZError as e:
            raise PublisherDeclarationError(key_expr, str(e)) from e
        handle = ZenohPublishHandle(publisher)
        self._publishers.append(handle)
        return handle

    async def declare_subscriber(
        self, key_expr: KeyExpressionPattern
    ) -> ZenohSubscription:
        subscription = ZenohSubscription(key_expr, asyncio.get_running_loop())
        subscription.attach(
            self._session.declare_subscriber(key_expr, subscription.on_sample)
        )
        self._subscriptions.append(subscription)
        return subscription

    async def close(self) -> None:
        for subscription in self._subscriptions:
            subscription.undeclare()
        for publisher in self._publishers:
            publisher.undeclare()
        self._subscriptions.clear()
        self._publishers.clear()
        await asyncio.to_thread(self._session.close)
        logger.info("Zenoh session closed")
