"""
Tests for the MQTT receive loop and the Zenoh subscribe loop.

Each loop is driven directly against the in-memory fabrics, without the
supervisor, so loop-fatal errors surface as exceptions here.
"""

import asyncio

import pytest

from mqtt_zenoh_relay.core.config import RelayedTopic
from mqtt_zenoh_relay.core.errors import BrokerPublishError, OverlayPublishError
from mqtt_zenoh_relay.core.events import (
    PayloadEncoding,
    QoS,
    SessionClosed,
    SessionEstablished,
)
from mqtt_zenoh_relay.core.publisher_cache import PublisherCache
from mqtt_zenoh_relay.core.relay_loops import mqtt_receive_loop, zenoh_subscribe_loop
from mqtt_zenoh_relay.core.statistics import RelayStatistics
from mqtt_zenoh_relay.transport.memory import (
    InMemoryBroker,
    InMemoryOverlay,
    PublishedMessage,
)
from tests.test_helpers import cancel_and_wait, wait_for_condition


async def run_mqtt_loop(
    broker: InMemoryBroker,
    publishers: PublisherCache,
    statistics: RelayStatistics,
    *,
    subscriptions: tuple[str, ...] = ("#",),
    prefix: str | None = None,
) -> None:
    await asyncio.wait_for(
        mqtt_receive_loop(broker, publishers, subscriptions, prefix, statistics),
        timeout=2.0,
    )


class TestMqttReceiveLoop:
    @pytest.mark.asyncio
    async def test_message_is_published_under_prefix(
        self,
        broker: InMemoryBroker,
        overlay: InMemoryOverlay,
        publishers: PublisherCache,
        statistics: RelayStatistics,
    ) -> None:
        broker.deliver("lights/on", b"1")
        broker.emit(SessionClosed())

        await run_mqtt_loop(broker, publishers, statistics, prefix="house1")

        assert len(overlay.puts) == 1
        put = overlay.puts[0]
        assert put.key_expr == "house1/lights/on"
        assert put.payload == b"1"
        assert put.encoding is PayloadEncoding.TEXT_PLAIN
        assert statistics.mqtt_to_zenoh == 1

    @pytest.mark.asyncio
    async def test_message_without_prefix_keeps_topic(
        self,
        broker: InMemoryBroker,
        overlay: InMemoryOverlay,
        publishers: PublisherCache,
        statistics: RelayStatistics,
    ) -> None:
        broker.deliver("a/b", b"x")
        broker.emit(SessionClosed())

        await run_mqtt_loop(broker, publishers, statistics)

        assert overlay.puts[0].key_expr == "a/b"

    @pytest.mark.asyncio
    async def test_publisher_declared_once_per_topic(
        self,
        broker: InMemoryBroker,
        overlay: InMemoryOverlay,
        publishers: PublisherCache,
        statistics: RelayStatistics,
    ) -> None:
        for payload in (b"1", b"2", b"3"):
            broker.deliver("lights/on", payload)
        broker.deliver("lights/off", b"0")
        broker.emit(SessionClosed())

        await run_mqtt_loop(broker, publishers, statistics)

        assert [p.key_expr for p in overlay.publishers] == ["lights/on", "lights/off"]
        assert len(overlay.puts) == 4

    @pytest.mark.asyncio
    async def test_messages_are_forwarded_in_order(
        self,
        broker: InMemoryBroker,
        overlay: InMemoryOverlay,
        publishers: PublisherCache,
        statistics: RelayStatistics,
    ) -> None:
        payloads = [f"{i}".encode() for i in range(50)]
        for index, payload in enumerate(payloads):
            broker.deliver(f"topic/{index % 3}", payload)
        broker.emit(SessionClosed())

        await run_mqtt_loop(broker, publishers, statistics)

        assert [put.payload for put in overlay.puts] == payloads

    @pytest.mark.asyncio
    async def test_session_established_resubscribes_each_topic_once(
        self,
        broker: InMemoryBroker,
        publishers: PublisherCache,
        statistics: RelayStatistics,
    ) -> None:
        broker.emit(SessionEstablished())
        broker.emit(SessionClosed())

        await run_mqtt_loop(
            broker, publishers, statistics, subscriptions=("#", "lights/+")
        )

        assert broker.subscriptions == [
            ("#", QoS.AT_MOST_ONCE),
            ("lights/+", QoS.AT_MOST_ONCE),
        ]

    @pytest.mark.asyncio
    async def test_every_reconnect_resubscribes(
        self,
        broker: InMemoryBroker,
        publishers: PublisherCache,
        statistics: RelayStatistics,
    ) -> None:
        broker.emit(SessionEstablished())
        broker.report_error("connection reset by peer")
        broker.emit(SessionEstablished())
        broker.emit(SessionClosed())

        await run_mqtt_loop(broker, publishers, statistics, subscriptions=("a/#",))

        assert broker.subscriptions == [
            ("a/#", QoS.AT_MOST_ONCE),
            ("a/#", QoS.AT_MOST_ONCE),
        ]

    @pytest.mark.asyncio
    async def test_session_closed_ends_loop(
        self,
        broker: InMemoryBroker,
        overlay: InMemoryOverlay,
        publishers: PublisherCache,
        statistics: RelayStatistics,
    ) -> None:
        broker.emit(SessionClosed())
        broker.deliver("after/close", b"never")

        await run_mqtt_loop(broker, publishers, statistics)

        assert overlay.puts == []
        assert broker.events.qsize() == 1

    @pytest.mark.asyncio
    async def test_transport_error_is_logged_and_loop_continues(
        self,
        broker: InMemoryBroker,
        overlay: InMemoryOverlay,
        publishers: PublisherCache,
        statistics: RelayStatistics,
        log_records: list[str],
    ) -> None:
        broker.report_error("malformed packet")
        broker.deliver("a/b", b"still relayed")
        broker.emit(SessionClosed())

        await run_mqtt_loop(broker, publishers, statistics)

        assert overlay.puts[0].payload == b"still relayed"
        assert statistics.transport_errors == 1
        assert any("malformed packet" in record for record in log_records)

    @pytest.mark.asyncio
    async def test_rejected_key_expression_drops_only_that_message(
        self,
        broker: InMemoryBroker,
        overlay: InMemoryOverlay,
        publishers: PublisherCache,
        statistics: RelayStatistics,
        log_records: list[str],
    ) -> None:
        broker.deliver("/leading/slash", b"dropped")
        broker.deliver("good/topic", b"kept")
        broker.emit(SessionClosed())

        await run_mqtt_loop(broker, publishers, statistics)

        assert [put.payload for put in overlay.puts] == [b"kept"]
        assert "/leading/slash" not in publishers
        assert statistics.dropped_messages == 1
        assert any(
            record.startswith("ERROR") and "/leading/slash" in record
            for record in log_records
        )

    @pytest.mark.asyncio
    async def test_put_failure_is_loop_fatal(
        self,
        broker: InMemoryBroker,
        overlay: InMemoryOverlay,
        publishers: PublisherCache,
        statistics: RelayStatistics,
    ) -> None:
        overlay.put_failures = 1
        broker.deliver("a/b", b"lost")
        broker.deliver("a/b", b"next")

        with pytest.raises(OverlayPublishError):
            await run_mqtt_loop(broker, publishers, statistics)

        # The publisher stays cached for the restarted loop.
        assert "a/b" in publishers
        assert broker.events.qsize() == 1


class TestZenohSubscribeLoop:
    @pytest.mark.asyncio
    async def test_sample_is_published_on_mqtt(
        self,
        broker: InMemoryBroker,
        overlay: InMemoryOverlay,
        statistics: RelayStatistics,
    ) -> None:
        topic = RelayedTopic(name="temp/#", retained=True)
        subscription = await overlay.declare_subscriber(topic.name)
        subscription.push("temp/kitchen", b"21.5")

        task = asyncio.create_task(
            zenoh_subscribe_loop(broker, subscription, topic, statistics)
        )
        await wait_for_condition(lambda: len(broker.published) == 1)
        await cancel_and_wait(task)

        assert broker.published == [
            PublishedMessage(
                topic="temp/kitchen",
                qos=QoS.AT_MOST_ONCE,
                retain=True,
                payload=b"21.5",
            )
        ]
        assert statistics.zenoh_to_mqtt == 1

    @pytest.mark.asyncio
    async def test_retain_flag_follows_relayed_topic(
        self,
        broker: InMemoryBroker,
        overlay: InMemoryOverlay,
        statistics: RelayStatistics,
    ) -> None:
        topic = RelayedTopic(name="sensors/**")
        subscription = await overlay.declare_subscriber(topic.name)
        subscription.push("sensors/temp", b"20")

        task = asyncio.create_task(
            zenoh_subscribe_loop(broker, subscription, topic, statistics)
        )
        await wait_for_condition(lambda: len(broker.published) == 1)
        await cancel_and_wait(task)

        assert broker.published[0].topic == "sensors/temp"
        assert broker.published[0].retain is False
        assert broker.retained == {}

    @pytest.mark.asyncio
    async def test_samples_are_forwarded_in_order(
        self,
        broker: InMemoryBroker,
        overlay: InMemoryOverlay,
        statistics: RelayStatistics,
    ) -> None:
        topic = RelayedTopic(name="seq/**")
        subscription = await overlay.declare_subscriber(topic.name)
        payloads = [f"{i}".encode() for i in range(30)]
        for payload in payloads:
            subscription.push("seq/value", payload)

        task = asyncio.create_task(
            zenoh_subscribe_loop(broker, subscription, topic, statistics)
        )
        await wait_for_condition(lambda: len(broker.published) == len(payloads))
        await cancel_and_wait(task)

        assert [message.payload for message in broker.published] == payloads

    @pytest.mark.asyncio
    async def test_publish_failure_is_loop_fatal(
        self,
        broker: InMemoryBroker,
        overlay: InMemoryOverlay,
        statistics: RelayStatistics,
    ) -> None:
        topic = RelayedTopic(name="temp/**")
        subscription = await overlay.declare_subscriber(topic.name)
        subscription.push("temp/kitchen", b"21.5")
        broker.publish_failures = 1

        with pytest.raises(BrokerPublishError):
            await asyncio.wait_for(
                zenoh_subscribe_loop(broker, subscription, topic, statistics),
                timeout=2.0,
            )
        assert broker.published == []
