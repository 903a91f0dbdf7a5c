"""Build a CoverportConfig from YAML layers, the environment and CLI flags.

Layers, lowest precedence first:

    built-in defaults
    ~/.config/coverport/config.yaml
    ./.coverport.yaml
    COVERPORT__SECTION__KEY environment variables
    keyword overrides (what CLI flags turn into)

Each call returns a new object; the CLI hands it to the orchestrator.
"""

from contextvars import ContextVar
from functools import reduce
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from coverport.config.models import (
    CollectConfig,
    CoverportConfig,
    LoggingConfig,
    ProcessConfig,
    PushConfig,
)
from coverport.core.errors import ConfigurationError

GLOBAL_CONFIG_PATH = Path("~/.config/coverport/config.yaml").expanduser()
REPO_CONFIG_NAME = ".coverport.yaml"

# Merged YAML for the load_config call in progress
_file_layer: ContextVar[dict[str, Any] | None] = ContextVar("coverport_file_layer", default=None)


def read_layer(path: Path) -> dict[str, Any]:
    """Parse one YAML file; a missing file is an empty layer."""
    if not path.is_file():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigurationError.parse_error(str(path), str(e)) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError.parse_error(str(path), "top level must be a mapping")
    return data


def merge_layers(lower: dict[str, Any], upper: dict[str, Any]) -> dict[str, Any]:
    """Overlay ``upper`` on ``lower`` section by section; inputs are untouched."""
    merged = dict(lower)
    for key, value in upper.items():
        below = merged.get(key)
        if isinstance(below, dict) and isinstance(value, dict):
            merged[key] = merge_layers(below, value)
        else:
            merged[key] = value
    return merged


class _FileLayerSource(PydanticBaseSettingsSource):
    @property
    def layer(self) -> dict[str, Any]:
        return _file_layer.get() or {}

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:  # noqa: ARG002
        value = self.layer.get(field_name)
        return value, field_name, value is not None

    def __call__(self) -> dict[str, Any]:
        return {k: v for k, v in self.layer.items() if k in self.settings_cls.model_fields}


class CoverportSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="COVERPORT__",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="forbid",
    )

    logging: LoggingConfig = LoggingConfig()
    collect: CollectConfig = CollectConfig()
    push: PushConfig = PushConfig()
    process: ProcessConfig = ProcessConfig()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # First source wins
        return (init_settings, env_settings, _FileLayerSource(settings_cls))


def load_config(
    work_dir: Path | None = None,
    *,
    global_path: Path | None = None,
    **overrides: Any,
) -> CoverportConfig:
    """Resolve configuration for one invocation.

    Args:
        work_dir: Directory searched for ``.coverport.yaml``; cwd by default.
        global_path: Replaces the per-user config location (tests use this).
        **overrides: Partial sections, e.g. ``collect={"port": 8080}``.

    Raises:
        ConfigurationError: A file is not valid YAML or a value fails validation.
    """
    layers = [
        read_layer(global_path or GLOBAL_CONFIG_PATH),
        read_layer((work_dir or Path.cwd()) / REPO_CONFIG_NAME),
    ]
    token = _file_layer.set(reduce(merge_layers, layers, {}))
    try:
        settings = CoverportSettings(**overrides)
    except ValidationError as e:
        first = e.errors()[0]
        where = ".".join(str(part) for part in first["loc"])
        raise ConfigurationError.invalid_value(where, first.get("input"), first["msg"]) from e
    finally:
        _file_layer.reset(token)
    return CoverportConfig.model_validate(settings.model_dump())
