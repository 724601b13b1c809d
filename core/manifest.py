"""Project, entry point and module manifest reading."""

import logging
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any, Optional

import yaml
from packaging.version import InvalidVersion, Version
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigurationError
from .models import Dependency

logger = logging.getLogger(__name__)

MODULE_MANIFEST = "module.yaml"


def _check_version(v: Any) -> Any:
    if v is None:
        return v
    try:
        Version(str(v))
    except InvalidVersion as e:
        raise ValueError(f"invalid version {v!r}") from e
    return str(v)


class DependencySpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    min_version: Optional[str] = None
    max_version: Optional[str] = None
    type: str = "module"

    @field_validator("min_version", "max_version", mode="before")
    @classmethod
    def _norm_bound(cls, v: Any) -> Any:
        if v is None or str(v).strip() in {"", "*"}:
            return None
        return _check_version(v)


class ModuleManifest(BaseModel):
    """Content of a module.yaml file.

    Versions should be quoted in YAML: an unquoted 1.10 is read as the
    float 1.1.
    """

    model_config = ConfigDict(extra="ignore")

    name: str = Field(pattern=r"^[A-Za-z0-9_-]+$")
    version: str
    date: str = ""
    dependencies: list[DependencySpec] = Field(default_factory=list)

    @field_validator("version", mode="before")
    @classmethod
    def _norm_version(cls, v: Any) -> Any:
        return _check_version(v)

    @field_validator("date", mode="before")
    @classmethod
    def _norm_date(cls, v: Any) -> str:
        return "" if v is None else str(v)

    def to_dependencies(self) -> list[Dependency]:
        return [
            Dependency(
                name=dep.name,
                min_version=dep.min_version,
                max_version=dep.max_version,
                type=dep.type,
            )
            for dep in self.dependencies
        ]


class EntryPointSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    file: str = Field(min_length=1)
    config: str = Field(min_length=1)
    type: str = "classic"  # classic, cli...
    id: Optional[str] = None

    @property
    def ep_id(self) -> str:
        if self.id:
            return self.id
        return PurePosixPath(self.file).with_suffix("").as_posix()


class ProjectManifest(BaseModel):
    """Content of project.yaml."""

    model_config = ConfigDict(extra="ignore")

    name: str = ""
    modules_dirs: list[str] = Field(default_factory=lambda: ["modules"])
    ledger: str = "var/config/installer.ini"
    entrypoints: list[EntryPointSpec] = Field(default_factory=list)


class ModuleSettings(BaseModel):
    """Settings of a module in an entry point configuration."""

    model_config = ConfigDict(extra="ignore")

    enabled: bool = True
    parameters: dict[str, Any] = Field(default_factory=dict)


@dataclass(frozen=True)
class Project:
    """A project manifest bound to the directory it was read from."""

    root: Path
    manifest: ProjectManifest

    @property
    def ledger_path(self) -> Path:
        return self.root / self.manifest.ledger

    @property
    def lock_path(self) -> Path:
        ledger = self.ledger_path
        return ledger.with_name(ledger.name + ".lock")

    @property
    def modules_dirs(self) -> list[Path]:
        return [self.root / d for d in self.manifest.modules_dirs]

    def config_path(self, entrypoint: EntryPointSpec) -> Path:
        return self.root / entrypoint.config


def load_yaml(path: str | Path) -> dict[str, Any]:
    p = Path(path)
    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot read {p}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigurationError(f"{p} must contain a mapping")
    return raw


def load_project(path: str | Path) -> Project:
    """Read a project.yaml file.

    Args:
        path: Path of the project file

    Returns:
        The project, rooted at the directory of the file
    """
    p = Path(path)
    try:
        manifest = ProjectManifest.model_validate(load_yaml(p))
    except ValidationError as e:
        raise ConfigurationError(f"Invalid project file {p}: {e}") from e
    return Project(root=p.resolve().parent, manifest=manifest)


def load_module_manifest(module_dir: str | Path) -> ModuleManifest:
    p = Path(module_dir) / MODULE_MANIFEST
    try:
        return ModuleManifest.model_validate(load_yaml(p))
    except ValidationError as e:
        raise ConfigurationError(f"Invalid module manifest {p}: {e}") from e


def discover_modules(project: Project) -> dict[str, Path]:
    """Find module directories declared by a project.

    The first directory providing a module name wins.
    """
    found: dict[str, Path] = {}
    for modules_dir in project.modules_dirs:
        if not modules_dir.is_dir():
            logger.warning("Modules directory %s does not exist", modules_dir)
            continue
        for candidate in sorted(modules_dir.iterdir()):
            if not (candidate / MODULE_MANIFEST).is_file():
                continue
            name = load_module_manifest(candidate).name
            if name in found:
                logger.warning("Module %s in %s hidden by %s", name, candidate, found[name])
                continue
            found[name] = candidate
    return found


def module_settings(config: dict[str, Any]) -> dict[str, ModuleSettings]:
    """Extract the modules bound to an entry point from its configuration."""
    raw = config.get("modules") or {}
    if not isinstance(raw, dict):
        raise ConfigurationError("'modules' must be a mapping of module names")

    settings = {}
    for name, values in raw.items():
        if isinstance(values, bool):
            values = {"enabled": values}
        try:
            settings[str(name)] = ModuleSettings.model_validate(values or {})
        except ValidationError as e:
            raise ConfigurationError(f"Invalid settings for module {name}: {e}") from e
    return settings
