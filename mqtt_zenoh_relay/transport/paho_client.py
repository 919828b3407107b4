"""
paho-mqtt client adapter.

paho runs its network loop in a background thread and reports session changes
through callbacks. ``PahoBrokerClient`` turns those callbacks into the relay's
``BrokerEvent`` stream by handing each event to the asyncio loop with
``call_soon_threadsafe``:

- CONNACK accepted -> ``SessionEstablished`` (after every reconnect as well)
- CONNACK refused -> ``TransportError``
- PUBLISH -> ``MessageReceived``
- disconnect requested through ``disconnect()`` -> ``SessionClosed``, also
  while paho is between reconnect attempts
- any other disconnect -> ``TransportError``; paho reconnects on its own

paho does not restore subscriptions after a reconnect, which is why the MQTT
receive loop subscribes again on every ``SessionEstablished``.
"""

from __future__ import annotations

import asyncio
from typing import Any

import paho.mqtt.client as mqtt
from loguru import logger

from ..core.config import MqttSettings
from ..core.errors import BrokerPublishError, BrokerSubscribeError
from ..core.events import (
    BrokerEvent,
    MessageReceived,
    QoS,
    SessionClosed,
    SessionEstablished,
    TransportError,
)
from ..datastructures.type_aliases import MqttTopic, MqttTopicPattern, Payload

RECONNECT_MIN_DELAY_SECONDS = 1
RECONNECT_MAX_DELAY_SECONDS = 30


class PahoBrokerClient:
    """Asyncio facade over a threaded ``paho.mqtt.client.Client``."""

    def __init__(self, settings: MqttSettings, client: mqtt.Client | None = None):
        self.settings = settings
        self._client = client or mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=settings.client_id,
            protocol=mqtt.MQTTv311,
        )
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_message = self._on_message
        self._client.reconnect_delay_set(
            min_delay=RECONNECT_MIN_DELAY_SECONDS,
            max_delay=RECONNECT_MAX_DELAY_SECONDS,
        )
        self._loop: asyncio.AbstractEventLoop | None = None
        self._events: asyncio.Queue[BrokerEvent] = asyncio.Queue()
        self._started = False
        self._connected = False
        self._closing = False

    @classmethod
    def from_settings(cls, settings: MqttSettings) -> PahoBrokerClient:
        return cls(settings)

    async def connect(self) -> None:
        """Start connecting in the background; progress shows up as events."""
        self._loop = asyncio.get_running_loop()
        logger.info(
            f"Starting MQTT client {self.settings.client_id} for "
            f"{self.settings.address}:{self.settings.port} "
            f"(keep alive {self.settings.keep_alive_seconds}s)"
        )
        self._started = True
        self._client.connect_async(
            self.settings.address,
            self.settings.port,
            keepalive=self.settings.keep_alive_seconds,
        )
        self._client.loop_start()

    async def publish(
        self, topic: MqttTopic, qos: QoS, retain: bool, payload: Payload
    ) -> None:
        info = self._client.publish(topic, payload, qos=int(qos), retain=retain)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise BrokerPublishError(
                f"Failed to publish to {topic}: {mqtt.error_string(info.rc)}"
            )

    async def subscribe(self, pattern: MqttTopicPattern, qos: QoS) -> None:
        result, _ = self._client.subscribe(pattern, qos=int(qos))
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise BrokerSubscribeError(
                f"Failed to subscribe to {pattern}: {mqtt.error_string(result)}"
            )

    async def next_event(self) -> BrokerEvent:
        return await self._events.get()

    async def disconnect(self) -> None:
        self._closing = True
        connected = self._connected
        if self._started:
            # Also stops paho from reconnecting after a lost session.
            self._client.disconnect()
        if not connected:
            # No session left to report the disconnect through a callback.
            self._events.put_nowait(SessionClosed())

    async def close(self) -> None:
        """Stop paho's network thread."""
        await asyncio.to_thread(self._client.loop_stop)

    # paho callbacks, called from the network thread

    def _emit(self, event: BrokerEvent) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._events.put_nowait, event)

    def _on_connect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: mqtt.ConnectFlags,
        reason_code: Any,
        properties: Any,
    ) -> None:
        if reason_code.is_failure:
            self._emit(TransportError(detail=f"Connection refused: {reason_code}"))
            return
        self._connected = True
        self._emit(SessionEstablished(session_present=flags.session_present))

    def _on_disconnect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: mqtt.DisconnectFlags,
        reason_code: Any,
        properties: Any,
    ) -> None:
        self._connected = False
        if self._closing:
            self._emit(SessionClosed())
        else:
            self._emit(TransportError(detail=f"Disconnected: {reason_code}"))

    def _on_message(
        self, client: mqtt.Client, userdata: Any, message: mqtt.MQTTMessage
    ) -> None:
        self._emit(MessageReceived(topic=message.topic, payload=bytes(message.payload)))
