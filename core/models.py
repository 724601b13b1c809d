"""Core data models for modinstall."""

from dataclasses import dataclass, field
from enum import Enum, IntFlag

from packaging.version import Version

# error codes stored on a ModuleItem
INSTALL_ERROR_MISSING_DEPENDENCIES = 1
INSTALL_ERROR_CIRCULAR_DEPENDENCY = 2


class Action(Enum):
    """What the installer has to do with a module."""

    NONE = "none"
    INSTALL = "install"
    UPGRADE = "upgrade"
    REMOVE = "remove"


class Flags(IntFlag):
    """Bitmask of lifecycle actions whose hooks are actually executed."""

    INSTALL = 1
    UPGRADE = 2
    REMOVE = 4
    ALL = 7


@dataclass
class Dependency:
    """A dependency declared by a module manifest."""

    name: str
    min_version: str | None = None
    max_version: str | None = None
    type: str = "module"  # module, python, runtime...


@dataclass
class ModuleItem:
    """A module as seen by the dependency resolver."""

    name: str
    current_version: str | None
    source_version: str
    dependencies: list[Dependency] = field(default_factory=list)
    action: Action = Action.NONE
    in_error: int | None = None

    @property
    def is_installed(self) -> bool:
        return self.current_version is not None

    @property
    def next_version(self) -> str | None:
        """Version the module will have once the chain has been executed."""
        if self.action in (Action.INSTALL, Action.UPGRADE):
            return self.source_version
        if self.action == Action.REMOVE:
            return None
        return self.current_version


@dataclass
class ChainItem:
    """One step of a resolution chain."""

    item: ModuleItem
    action: Action

    @property
    def name(self) -> str:
        return self.item.name


@dataclass
class ModuleInfos:
    """State of a module for one entry point."""

    name: str
    enabled: bool = True
    installed: bool = False
    version: str | None = None
    parameters: dict = field(default_factory=dict)


@dataclass
class LedgerRecord:
    """Persisted installation state of a module for one entry point."""

    installed: bool
    version: str | None = None
    version_date: str | None = None
    first_version: str | None = None
    first_version_date: str | None = None


def derive_action(
    current_version: str | None,
    source_version: str,
    enabled: bool = True,
) -> Action:
    """Compute the action needed to bring a module to its source version."""
    if current_version is None:
        return Action.INSTALL if enabled else Action.NONE
    if Version(current_version) < Version(source_version):
        return Action.UPGRADE
    return Action.NONE
