"""Configuration manager with override contexts."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, is_dataclass, replace
from typing import TYPE_CHECKING, Any

from ..config import ConvertToolkitConfig
from ..config import get_config as _get_global_config

if TYPE_CHECKING:
    from pathlib import Path

LOG = logging.getLogger(__name__)


@dataclass
class ProcessingOptions:
    """Command-line options that can override configuration."""

    workers: int | None = None
    output_dir: str | None = None
    temp_dir: str | None = None
    ffmpeg_bin: str | None = None
    lyrics: bool | None = None
    embed_lyrics: bool | None = None
    legacy_tag: bool | None = None


def _apply_override(config: Any, parts: list[str], value: object) -> Any:
    """Return a copy of a dataclass tree with one dotted attribute replaced."""
    head, *rest = parts
    if not is_dataclass(config) or not hasattr(config, head):
        msg = f"Unknown configuration key: {head}"
        raise KeyError(msg)
    if rest:
        value = _apply_override(getattr(config, head), rest, value)
    return replace(config, **{head: value})


class ConfigManager:
    """Configuration manager with context support."""

    def __init__(self, config_path: Path | None = None) -> None:
        """
        Initialize configuration manager.

        Args:
            config_path: Optional path to config file; environment overrides
                are applied on top of it once, here

        """
        if config_path:
            self._config = ConvertToolkitConfig.load_from_file(config_path).with_env_overrides(os.environ)
        else:
            self._config = _get_global_config()
        self._overrides: dict[str, Any] = {}
        self._context_stack: list[dict[str, Any]] = []

    @property
    def config(self) -> ConvertToolkitConfig:
        """Get the base configuration."""
        return self._config

    def get_value(self, key_path: str, default: object = None) -> object:
        """Get configuration value with override support."""
        if key_path in self._overrides:
            return self._overrides[key_path]

        try:
            value: Any = self._config
            for part in key_path.split("."):
                value = getattr(value, part)
        except AttributeError:
            return default
        else:
            return value

    def set_override(self, key_path: str, value: object) -> None:
        """Set a temporary configuration override."""
        self._overrides[key_path] = value

    def push_context(self, overrides: dict[str, Any]) -> None:
        """Push a new configuration context."""
        self._context_stack.append(self._overrides.copy())
        self._overrides.update(overrides)

    def pop_context(self) -> None:
        """Pop the current configuration context."""
        if self._context_stack:
            self._overrides = self._context_stack.pop()

    def effective_config(self) -> ConvertToolkitConfig:
        """Materialize the base configuration with all current overrides applied."""
        config = self._config
        for key_path, value in self._overrides.items():
            try:
                config = _apply_override(config, key_path.split("."), value)
            except KeyError:
                LOG.warning("Ignoring override for unknown key %s", key_path)
        return config

    def apply_processing_options(self, options: ProcessingOptions) -> None:
        """Apply processing options as configuration overrides."""
        overrides: dict[str, Any] = {}

        if options.workers is not None:
            overrides["global_.default_workers"] = options.workers
        if options.output_dir is not None:
            overrides["global_.output_dir"] = options.output_dir
        if options.temp_dir is not None:
            overrides["global_.temp_dir"] = options.temp_dir
        if options.ffmpeg_bin is not None:
            overrides["ffmpeg.binary"] = options.ffmpeg_bin
        if options.lyrics is not None:
            overrides["lyrics.enabled"] = options.lyrics
        if options.embed_lyrics is not None:
            overrides["lyrics.embed"] = options.embed_lyrics
        if options.legacy_tag is not None:
            overrides["tags.write_legacy_tag"] = options.legacy_tag

        for key, value in overrides.items():
            self.set_override(key, value)


class ConfigContext:
    """Context manager for temporary configuration changes."""

    def __init__(self, config_manager: ConfigManager, overrides: dict[str, Any]) -> None:
        self.config_manager = config_manager
        self.overrides = overrides

    def __enter__(self) -> ConfigManager:
        self.config_manager.push_context(self.overrides)
        return self.config_manager

    def __exit__(self, _exc_type: object, _exc_val: object, _exc_tb: object) -> None:
        self.config_manager.pop_context()


def with_config_overrides(config_manager: ConfigManager, **overrides: object) -> ConfigContext:
    """
    Create a context with configuration overrides.

    Keyword names use ``__`` in place of dots, e.g. ``tags__write_legacy_tag``.
    """
    return ConfigContext(config_manager, {key.replace("__", "."): value for key, value in overrides.items()})
