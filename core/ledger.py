"""Persistent ledger of installed modules (installer.ini)."""

import configparser
import logging
import os
from pathlib import Path

from .errors import ConfigurationError
from .models import LedgerRecord

logger = logging.getLogger(__name__)

KEY_SUFFIXES = (
    "installed",
    "version",
    "version.date",
    "firstversion",
    "firstversion.date",
)


class InstallLedger:
    """Flat key/value store, one scope (INI section) per entry point.

    Changes stay in memory until save() is called. save() is the
    checkpoint used to resume an interrupted installation.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._parser = self._new_parser()
        self.reload()

    @staticmethod
    def _new_parser() -> configparser.ConfigParser:
        parser = configparser.ConfigParser(interpolation=None)
        parser.optionxform = str  # module names are case sensitive
        return parser

    def reload(self) -> None:
        """Drop in-memory changes and re-read the file."""
        parser = self._new_parser()
        if self.path.exists():
            try:
                parser.read_string(self.path.read_text(encoding="utf-8"), source=str(self.path))
            except (OSError, configparser.Error) as e:
                raise ConfigurationError(f"Cannot read installer ledger {self.path}: {e}") from e
        self._parser = parser

    def set_value(self, key: str, value, scope: str) -> None:
        if not self._parser.has_section(scope):
            self._parser.add_section(scope)
        self._parser.set(scope, key, self._to_string(value))

    def remove_value(self, key: str, scope: str) -> None:
        if self._parser.has_section(scope):
            self._parser.remove_option(scope, key)

    def get_value(self, key: str, scope: str, default: str | None = None) -> str | None:
        if not self._parser.has_section(scope):
            return default
        return self._parser.get(scope, key, fallback=default)

    def get_values(self, scope: str) -> dict[str, str]:
        if not self._parser.has_section(scope):
            return {}
        return dict(self._parser.items(scope))

    def scopes(self) -> list[str]:
        return self._parser.sections()

    def get_record(self, scope: str, module: str) -> LedgerRecord | None:
        """Read the persisted state of a module.

        Args:
            scope: Entry point id
            module: Module name

        Returns:
            The record, or None if nothing is known about the module
        """
        values = self.get_values(scope)
        if f"{module}.installed" not in values and f"{module}.version" not in values:
            return None
        return LedgerRecord(
            installed=values.get(f"{module}.installed", "0") == "1",
            version=values.get(f"{module}.version") or None,
            version_date=values.get(f"{module}.version.date") or None,
            first_version=values.get(f"{module}.firstversion") or None,
            first_version_date=values.get(f"{module}.firstversion.date") or None,
        )

    def remove_module(self, scope: str, module: str) -> None:
        for suffix in KEY_SUFFIXES:
            self.remove_value(f"{module}.{suffix}", scope)

    def save(self) -> None:
        """Write the ledger to disk and return once it is durable."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            self._parser.write(f)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, self.path)
        logger.debug("Ledger saved to %s", self.path)

    @staticmethod
    def _to_string(value) -> str:
        if value is None:
            return ""
        if isinstance(value, bool):
            return "1" if value else "0"
        return str(value)
