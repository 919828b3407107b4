"""
Statistics dataclasses for the relay.

Counters are mutated in place by the relay loops and the supervisor; callers
read them through immutable snapshots.
"""

from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from ..datastructures.type_aliases import LoopName, RestartCount


@dataclass(frozen=True, slots=True)
class RelayStatisticsSnapshot:
    """Point-in-time view of relay activity."""

    mqtt_to_zenoh: int
    zenoh_to_mqtt: int
    dropped_messages: int
    transport_errors: int
    loop_restarts: dict[LoopName, RestartCount]
    cached_publishers: int
    uptime_seconds: float

    @property
    def total_restarts(self) -> int:
        return sum(self.loop_restarts.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "mqtt_to_zenoh": self.mqtt_to_zenoh,
            "zenoh_to_mqtt": self.zenoh_to_mqtt,
            "dropped_messages": self.dropped_messages,
            "transport_errors": self.transport_errors,
            "loop_restarts": dict(self.loop_restarts),
            "cached_publishers": self.cached_publishers,
            "uptime_seconds": self.uptime_seconds,
        }


@dataclass(slots=True)
class RelayStatistics:
    """Mutable counters shared by the relay loops."""

    mqtt_to_zenoh: int = 0
    zenoh_to_mqtt: int = 0
    dropped_messages: int = 0
    transport_errors: int = 0
    loop_restarts: Counter[LoopName] = field(default_factory=Counter)
    started_at: float = field(default_factory=time.monotonic)

    def record_restart(self, loop_name: LoopName) -> None:
        self.loop_restarts[loop_name] += 1

    def snapshot(self, cached_publishers: int = 0) -> RelayStatisticsSnapshot:
        return RelayStatisticsSnapshot(
            mqtt_to_zenoh=self.mqtt_to_zenoh,
            zenoh_to_mqtt=self.zenoh_to_mqtt,
            dropped_messages=self.dropped_messages,
            transport_errors=self.transport_errors,
            loop_restarts=dict(self.loop_restarts),
            cached_publishers=cached_publishers,
            uptime_seconds=time.monotonic() - self.started_at,
        )
