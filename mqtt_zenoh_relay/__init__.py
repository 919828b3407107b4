"""
mqtt-zenoh-relay - mirror MQTT topics onto Zenoh and Zenoh key expressions
onto MQTT.

## Architecture

- **core**: topic translation, publisher cache, the two relay loops and their
  retry supervisor, settings and logging
- **transport**: paho-mqtt and eclipse-zenoh adapters plus in-memory fabrics
- **cli**: the ``mqtt-zenoh-relay`` command

## Quick Start

```python
from mqtt_zenoh_relay import MqttZenohRelay, load_settings
from mqtt_zenoh_relay.transport.paho_client import PahoBrokerClient
from mqtt_zenoh_relay.transport.zenoh_session import ZenohOverlaySession

settings = load_settings("configuration/settings.yaml")
overlay = await ZenohOverlaySession.open(settings.zenoh)
broker = PahoBrokerClient.from_settings(settings.mqtt)
await broker.connect()
await MqttZenohRelay(settings, broker, overlay).run()
```
"""

from .core import (
    MqttSettings,
    MqttZenohRelay,
    PublisherCache,
    RelayedTopic,
    RelaySettings,
    RestartPolicy,
    ZenohSettings,
    load_settings,
)

__version__ = "0.2.0"

__all__ = [
    "MqttSettings",
    "MqttZenohRelay",
    "PublisherCache",
    "RelaySettings",
    "RelayedTopic",
    "RestartPolicy",
    "ZenohSettings",
    "load_settings",
]
