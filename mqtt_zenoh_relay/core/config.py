"""
Relay settings and settings loading.

Settings come from a YAML (or JSON) file with an ``mqtt`` and a ``zenoh``
section and an optional ``supervisor`` section::

    mqtt:
      client_id: mqtt_zenoh_relay
      address: localhost
      subscriptions: ["#"]
    zenoh:
      relayed_topics:
        - name: "temp/#"
          retained: true

Without an explicit path, ``configuration/settings.yaml`` is loaded and
``configuration/dev_settings.yaml`` is layered on top of it when present.

The merged file data is then handed to ``RelaySettings``, a pydantic-settings
model, so environment variables named ``APP_<SECTION>__<FIELD>`` (and the same
names in a ``.env`` file) override it. List values in the environment are JSON,
e.g. ``APP_MQTT__SUBSCRIPTIONS='["home/#"]'``.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any, ClassVar

import yaml
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    SettingsError,
)

from ..datastructures.type_aliases import (
    EndpointLocator,
    HostAddress,
    KeyExpressionPattern,
    MqttTopicPattern,
    TopicPrefix,
)
from .errors import ConfigurationError
from .supervisor import RestartPolicy

DEFAULT_MQTT_HOST = "localhost"
DEFAULT_MQTT_PORT = 1883
DEFAULT_KEEP_ALIVE_SECONDS = 5
MQTT_WILDCARD_TOPIC = "#"

DEFAULT_CONFIG_DIR = Path("configuration")
SETTINGS_FILE_NAME = "settings.yaml"
DEV_SETTINGS_FILE_NAME = "dev_settings.yaml"

ENV_PREFIX = "APP_"
ENV_SEPARATOR = "__"


def _warn_unknown_keys(model: type[BaseModel], data: Any, where: str) -> None:
    if not isinstance(data, Mapping):
        return
    for key in data:
        if key not in model.model_fields:
            logger.warning(f"Ignoring unknown setting {where}.{key}")


class SettingsSection(BaseModel):
    """Base for one section of the settings file; unknown keys are ignored."""

    model_config = ConfigDict(extra="ignore")

    section_name: ClassVar[str]

    @model_validator(mode="before")
    @classmethod
    def report_unknown_keys(cls, data: Any) -> Any:
        _warn_unknown_keys(cls, data, cls.section_name)
        return data


class RelayedTopic(SettingsSection):
    """A Zenoh key expression mirrored onto MQTT."""

    model_config = ConfigDict(frozen=True)

    section_name: ClassVar[str] = "zenoh.relayed_topics"

    name: KeyExpressionPattern = Field(
        description="Key expression to subscribe to on Zenoh."
    )
    retained: bool = Field(
        False, description="Publish the relayed samples as retained MQTT messages."
    )

    @model_validator(mode="before")
    @classmethod
    def accept_bare_name(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"name": data}
        return data


class MqttSettings(SettingsSection):
    """MQTT broker connection settings."""

    section_name: ClassVar[str] = "mqtt"

    client_id: str = Field(min_length=1, description="MQTT client identifier.")
    address: HostAddress = Field(
        DEFAULT_MQTT_HOST, description="Host name or address of the broker."
    )
    port: int = Field(DEFAULT_MQTT_PORT, gt=0, lt=65536, description="Broker port.")
    subscriptions: list[MqttTopicPattern] = Field(
        default_factory=lambda: [MQTT_WILDCARD_TOPIC],
        description="Topics to subscribe to on the broker, everything by default.",
    )
    mqtt_relay_prefix: TopicPrefix | None = Field(
        None,
        description="Prepended to MQTT topics when building Zenoh key expressions.",
    )
    keep_alive_seconds: int = Field(DEFAULT_KEEP_ALIVE_SECONDS, gt=0)


class ZenohSettings(SettingsSection):
    """Zenoh session settings and the key expressions relayed to MQTT."""

    section_name: ClassVar[str] = "zenoh"

    connect: list[EndpointLocator] = Field(
        default_factory=list, description="Endpoints to connect to."
    )
    listen: list[EndpointLocator] = Field(
        default_factory=list, description="Endpoints to listen on."
    )
    config_file_path: str | None = Field(
        None, description="Zenoh JSON5 configuration file used as the base config."
    )
    disable_multicast_scouting: bool = False
    relayed_topics: list[RelayedTopic] = Field(
        default_factory=list, description="Key expressions relayed to MQTT."
    )


class RelaySettings(BaseSettings):
    """Complete relay configuration, validated."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_nested_delimiter=ENV_SEPARATOR,
        env_file=".env",
        extra="ignore",
    )

    mqtt: MqttSettings
    zenoh: ZenohSettings = Field(default_factory=ZenohSettings)
    supervisor: RestartPolicy = Field(
        default_factory=RestartPolicy,
        description="Restart delays of the relay loops.",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # File data arrives as init values; the environment overrides it.
        return env_settings, dotenv_settings, init_settings

    @model_validator(mode="before")
    @classmethod
    def report_unknown_keys(cls, data: Any) -> Any:
        _warn_unknown_keys(cls, data, "settings")
        return data

    @classmethod
    def from_dict(cls, data: Any) -> RelaySettings:
        """Validate already merged settings data, without environment overrides.

        Raises:
            ConfigurationError: validation failed.
        """
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(describe_validation_error(e)) from e

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump()


def describe_validation_error(error: ValidationError) -> str:
    """One ``section.field: message`` entry per validation failure."""
    return "; ".join(
        f"{'.'.join(str(part) for part in detail['loc']) or 'settings'}: "
        f"{detail['msg']}"
        for detail in error.errors()
    )


def load_settings(
    path: str | Path | None = None,
    *,
    config_dir: Path = DEFAULT_CONFIG_DIR,
) -> RelaySettings:
    """Load, merge and validate relay settings.

    Args:
        path: Settings file to use. When omitted the dev configuration in
            ``config_dir`` is used.
        config_dir: Directory holding the default settings files.

    Raises:
        ConfigurationError: a file is missing or malformed, an ``APP_`` variable
            cannot be parsed, or validation failed.
    """
    if path is not None:
        logger.info(f"Using configuration from {path}")
        data = read_settings_file(Path(path))
    else:
        logger.info("Using dev configuration")
        data = read_settings_file(config_dir / SETTINGS_FILE_NAME)
        dev_settings = config_dir / DEV_SETTINGS_FILE_NAME
        if dev_settings.exists():
            data = merge_settings(data, read_settings_file(dev_settings))

    try:
        return RelaySettings(**data)
    except ValidationError as e:
        raise ConfigurationError(describe_validation_error(e)) from e
    except SettingsError as e:
        raise ConfigurationError(f"Invalid environment override: {e}") from e


def read_settings_file(path: Path) -> dict[str, Any]:
    """Read a YAML or JSON settings file into a mapping."""
    try:
        with open(path, encoding="utf-8") as f:
            if path.suffix == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Settings file not found: {path}") from e
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Failed to parse settings file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Settings file {path} must contain a mapping")
    return {str(key): value for key, value in data.items()}


def merge_settings(
    base: Mapping[str, Any], override: Mapping[str, Any]
) -> dict[str, Any]:
    """Deep merge ``override`` into ``base``; nested mappings merge key by key."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = merge_settings(current, value)
        else:
            merged[key] = value
    return merged
