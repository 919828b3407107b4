from __future__ import annotations

import asyncio
from dataclasses import dataclass

from jsonargparse import CLI
from loguru import logger
from rich.console import Console
from rich.table import Table

from mqtt_zenoh_relay.core.config import RelaySettings, load_settings
from mqtt_zenoh_relay.core.errors import ConfigurationError, RelayStartupError
from mqtt_zenoh_relay.core.logging import LoggingHandle, configure_logging
from mqtt_zenoh_relay.core.relay import MqttZenohRelay

console = Console()


async def run_relay(settings: RelaySettings) -> None:
    """Open both fabrics and relay between them until MQTT disconnects."""
    from mqtt_zenoh_relay.transport.paho_client import PahoBrokerClient
    from mqtt_zenoh_relay.transport.zenoh_session import ZenohOverlaySession

    overlay = await ZenohOverlaySession.open(settings.zenoh)
    broker = PahoBrokerClient.from_settings(settings.mqtt)
    relay = MqttZenohRelay(settings=settings, broker=broker, overlay=overlay)
    try:
        await broker.connect()
        await relay.run()
    finally:
        # Undeclaring the subscribers first ends every inbound loop.
        await overlay.close()
        await broker.close()


def settings_table(settings: RelaySettings) -> Table:
    table = Table(title="mqtt-zenoh-relay settings")
    table.add_column("Setting", style="cyan", no_wrap=True)
    table.add_column("Value", style="magenta")

    mqtt = settings.mqtt
    table.add_row("mqtt.address", f"{mqtt.address}:{mqtt.port}")
    table.add_row("mqtt.client_id", mqtt.client_id)
    table.add_row("mqtt.subscriptions", ", ".join(mqtt.subscriptions))
    table.add_row("mqtt.mqtt_relay_prefix", mqtt.mqtt_relay_prefix or "-")

    zenoh = settings.zenoh
    table.add_row("zenoh.connect", ", ".join(zenoh.connect) or "-")
    table.add_row("zenoh.listen", ", ".join(zenoh.listen) or "-")
    table.add_row("zenoh.config_file_path", zenoh.config_file_path or "-")
    table.add_row(
        "zenoh.disable_multicast_scouting", str(zenoh.disable_multicast_scouting)
    )
    for topic in zenoh.relayed_topics:
        retained = " (retained)" if topic.retained else ""
        table.add_row("zenoh.relayed_topics", f"{topic.name}{retained}")

    policy = settings.supervisor
    table.add_row(
        "supervisor.initial_delay_seconds", str(policy.initial_delay_seconds)
    )
    table.add_row("supervisor.max_delay_seconds", str(policy.max_delay_seconds))
    return table


@dataclass(slots=True)
class RelayCLI:
    """Relay MQTT messages to Zenoh and Zenoh samples to MQTT.

    Args:
        settings: Settings file (YAML or JSON). Defaults to the dev
            configuration in ./configuration.
        log_level: Minimum log level.
        debug_scopes: Modules whose DEBUG logs are shown regardless of level.
        log_json: Emit logs as JSON lines.
    """

    settings: str | None = None
    log_level: str = "INFO"
    debug_scopes: list[str] | None = None
    log_json: bool = False

    def _configure_logging(self) -> LoggingHandle:
        return configure_logging(
            self.log_level,
            debug_scopes=self.debug_scopes or (),
            serialize=self.log_json,
        )

    def run(self) -> None:
        """Run the relay until the MQTT session is closed."""
        with self._configure_logging():
            try:
                settings = load_settings(self.settings)
                asyncio.run(run_relay(settings))
            except (ConfigurationError, RelayStartupError) as e:
                logger.error(f"Startup failed: {e}")
                raise SystemExit(1) from e
            except KeyboardInterrupt:
                logger.warning("Interrupted, shutting down")

    def check(self) -> RelaySettings:
        """Load and validate the settings, then print them."""
        with self._configure_logging():
            try:
                settings = load_settings(self.settings)
            except ConfigurationError as e:
                logger.error(f"Invalid settings: {e}")
                raise SystemExit(1) from e
        console.print(settings_table(settings))
        return settings


def main() -> None:
    CLI(RelayCLI, as_dict=False)  # type: ignore[no-untyped-call]


if __name__ == "__main__":
    main()
