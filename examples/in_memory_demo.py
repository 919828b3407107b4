#!/usr/bin/env python3
"""Relay demo over the in-memory fabrics, no broker or router needed."""

import asyncio

from mqtt_zenoh_relay import MqttSettings, MqttZenohRelay, RelaySettings
from mqtt_zenoh_relay.core.config import RelayedTopic, ZenohSettings
from mqtt_zenoh_relay.core.logging import configure_logging
from mqtt_zenoh_relay.transport import InMemoryBroker, InMemoryOverlay


async def main():
    print("MQTT <-> Zenoh relay demo")
    print("=" * 30)

    settings = RelaySettings(
        mqtt=MqttSettings(client_id="demo", mqtt_relay_prefix="house1"),
        zenoh=ZenohSettings(
            relayed_topics=[RelayedTopic(name="temp/**", retained=True)]
        ),
    )
    broker = InMemoryBroker()
    overlay = InMemoryOverlay()
    relay = MqttZenohRelay(settings=settings, broker=broker, overlay=overlay)
    await relay.start()

    broker.acknowledge_connect()
    broker.deliver("lights/on", b"1")
    overlay.publish_sample("temp/kitchen", b"21.5")
    await asyncio.sleep(0.1)

    for put in overlay.puts:
        print(f"zenoh <- {put.key_expr}: {put.payload!r} ({put.encoding.value})")
    for message in broker.published:
        print(f"mqtt  <- {message.topic}: {message.payload!r} retain={message.retain}")

    await relay.stop()
    await relay.wait_closed()
    print(f"Statistics: {relay.statistics_snapshot().to_dict()}")


if __name__ == "__main__":
    with configure_logging("WARNING"):
        asyncio.run(main())
