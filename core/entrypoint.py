"""Entry point context: configuration and modules of one entry point."""

import logging
import os
from functools import cached_property
from pathlib import Path
from typing import Any

import yaml

from .manifest import load_yaml
from .models import ModuleInfos

logger = logging.getLogger(__name__)


def _flatten(data: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    flat: dict[str, Any] = {}
    for key, value in data.items():
        dotted = f"{prefix}{key}"
        if isinstance(value, dict) and value:
            flat.update(_flatten(value, dotted + "."))
        else:
            flat[dotted] = value
    return flat


class EntryPointContext:
    """Configuration and module set of one entry point.

    Module hooks write to the configuration file directly, so the
    installer calls reload_config() after each of them instead of
    trusting the in-memory copy.
    """

    def __init__(self, ep_id: str, name: str, config_path: str | Path, ep_type: str = "classic"):
        self.id = ep_id
        self.name = name
        self.type = ep_type
        self.config_path = Path(config_path)
        self.modules: dict[str, ModuleInfos] = {}
        self._config: dict[str, Any] = {}
        self.reload_config()

    @property
    def is_cli(self) -> bool:
        return self.type == "cli"

    @property
    def config(self) -> dict[str, Any]:
        return self._config

    def set_config(self, config: dict[str, Any]) -> None:
        self._config = config
        # derived views are computed from the previous config
        self.__dict__.pop("compiled_config", None)

    def reload_config(self) -> None:
        """Re-read the configuration file, dropping every cached view."""
        if self.config_path.exists():
            config = load_yaml(self.config_path)
        else:
            logger.warning("Configuration file %s of entry point %s not found", self.config_path, self.id)
            config = {}
        self.set_config(config)

    @cached_property
    def compiled_config(self) -> dict[str, Any]:
        """Configuration flattened to dotted keys."""
        return _flatten(self._config)

    @property
    def disable_installers(self) -> bool:
        return bool(self._config.get("disable_installers", False))

    def get_config_value(self, key: str, default: Any = None) -> Any:
        return self.compiled_config.get(key, default)

    def set_config_value(self, key: str, value: Any) -> None:
        """Change a value in the persisted configuration file.

        The in-memory configuration is not modified; it is refreshed on
        the next reload_config().

        Args:
            key: Dotted key, e.g. "modules.news.enabled"
            value: New value
        """
        data = load_yaml(self.config_path) if self.config_path.exists() else {}
        node = data
        *parents, last = key.split(".")
        for part in parents:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[last] = value

        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.config_path.with_name(self.config_path.name + ".tmp")
        tmp.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
        os.replace(tmp, self.config_path)

    def __repr__(self) -> str:
        return f"EntryPointContext(id={self.id!r}, config={str(self.config_path)!r})"
