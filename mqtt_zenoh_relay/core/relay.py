"""
MQTT <-> Zenoh relay orchestration.

``MqttZenohRelay`` wires already connected fabric clients to the relay loops:

- one supervised ``zenoh_subscribe_loop`` per relayed Zenoh key expression;
- one supervised ``mqtt_receive_loop`` for the broker event stream.

The relay runs until the broker session is closed on request. Failures of
either loop after startup are logged and the loop is restarted; only errors
while declaring the Zenoh subscribers at startup are fatal.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from functools import partial

from loguru import logger

from .config import RelaySettings
from .errors import RelayStartupError
from .interfaces import BrokerClient, OverlaySession
from .publisher_cache import PublisherCache
from .relay_loops import mqtt_receive_loop, zenoh_subscribe_loop
from .statistics import RelayStatistics, RelayStatisticsSnapshot
from .supervisor import supervise
from .task_manager import TaskManager

MQTT_LOOP_NAME = "MQTT receive loop"


def zenoh_loop_name(key_expr: str) -> str:
    return f"zenoh subscribe loop [{key_expr}]"


@dataclass(slots=True)
class MqttZenohRelay:
    """Bidirectional relay between one MQTT client and one Zenoh session."""

    settings: RelaySettings
    broker: BrokerClient
    overlay: OverlaySession
    statistics: RelayStatistics = field(default_factory=RelayStatistics)
    publishers: PublisherCache = field(init=False)
    _tasks: TaskManager = field(init=False)
    _mqtt_task: asyncio.Task[None] | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        # Explicit publishers per key expression rather than session-level puts.
        self.publishers = PublisherCache(self.overlay.declare_publisher)
        self._tasks = TaskManager(self.__class__.__name__)

    @property
    def running(self) -> bool:
        return self._mqtt_task is not None and not self._mqtt_task.done()

    async def start(self) -> None:
        """Declare the Zenoh subscribers and spawn the supervised loops.

        Raises:
            RelayStartupError: a relayed key expression could not be subscribed.
        """
        if self._mqtt_task is not None:
            raise RuntimeError("Relay already started")

        policy = self.settings.supervisor
        subscriptions = []
        for topic in self.settings.zenoh.relayed_topics:
            logger.info(
                f"Subscribing to zenoh topic {topic.name} (retained={topic.retained})"
            )
            try:
                subscriber = await self.overlay.declare_subscriber(topic.name)
            except Exception as e:
                raise RelayStartupError(
                    f"Failed to subscribe to zenoh topic {topic.name!r}: {e}"
                ) from e
            subscriptions.append((topic, subscriber))

        for topic, subscriber in subscriptions:
            name = zenoh_loop_name(topic.name)
            run_once = partial(
                zenoh_subscribe_loop, self.broker, subscriber, topic, self.statistics
            )
            self._tasks.create_task(
                supervise(name, run_once, policy, self.statistics), name=name
            )

        run_mqtt = partial(
            mqtt_receive_loop,
            self.broker,
            self.publishers,
            tuple(self.settings.mqtt.subscriptions),
            self.settings.mqtt.mqtt_relay_prefix,
            self.statistics,
        )
        self._mqtt_task = self._tasks.create_task(
            supervise(MQTT_LOOP_NAME, run_mqtt, policy, self.statistics),
            name=MQTT_LOOP_NAME,
        )

    async def wait_closed(self) -> None:
        """Wait for the MQTT loop to shut down, then stop the Zenoh loops."""
        if self._mqtt_task is None:
            raise RuntimeError("Relay not started")
        try:
            await self._mqtt_task
        finally:
            await self._tasks.shutdown()
            logger.info(f"Relay stopped: {self.statistics_snapshot().to_dict()}")

    async def run(self) -> None:
        """Start the relay and block until the broker session is closed."""
        await self.start()
        await self.wait_closed()

    async def stop(self) -> None:
        """Disconnect from the broker, which ends the relay cleanly."""
        await self.broker.disconnect()

    def statistics_snapshot(self) -> RelayStatisticsSnapshot:
        return self.statistics.snapshot(cached_publishers=len(self.publishers))
