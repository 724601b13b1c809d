"""Exceptions raised by modinstall."""

from enum import Enum


class ModInstallError(Exception):
    """Base class for all modinstall errors."""


class ConfigurationError(ModInstallError):
    """Unreadable manifest, unknown entry point or module, invalid config.

    Fatal to the whole operation.
    """


class InstallLockedError(ConfigurationError):
    """Another installation holds the lock."""


class InstallerError(ModInstallError):
    """Structured error raised by a module lifecycle hook.

    The key refers to an entry of the message catalog, params are used
    to format it.
    """

    def __init__(self, key: str, params=None):
        self.key = key
        if params is None:
            params = ()
        elif not isinstance(params, (list, tuple)):
            params = (params,)
        self.params = tuple(params)
        super().__init__(key, *self.params)


class ConflictKind(Enum):
    CIRCULAR_DEPENDENCY = "circular_dependency"
    VERSION_MISMATCH = "version_mismatch"
    DELETION_CONFLICT = "deletion_conflict"
    MISSING_DEPENDENCY = "missing_dependency"
    DEPENDENCY_INSTALL_FAILURE = "dependency_install_failure"
    DEPENDENCY_REMOVE_FAILURE = "dependency_remove_failure"


class ResolutionError(ModInstallError):
    """The dependencies of an entry point cannot be resolved."""

    kind: ConflictKind

    def __init__(
        self,
        item: str,
        related: str | list[str] | None = None,
        min_version: str | None = None,
        max_version: str | None = None,
    ):
        self.item = item
        self.related = related
        self.min_version = min_version
        self.max_version = max_version
        super().__init__(self._describe())

    def _describe(self) -> str:
        return f"{self.kind.value}: {self.item}"


class CircularDependencyError(ResolutionError):
    kind = ConflictKind.CIRCULAR_DEPENDENCY

    def _describe(self) -> str:
        cycle = " -> ".join(self.related or [self.item])
        return f"Circular dependency for {self.item} ({cycle})"


class VersionMismatchError(ResolutionError):
    kind = ConflictKind.VERSION_MISMATCH

    def _describe(self) -> str:
        return (
            f"{self.item} requires {self.related} between "
            f"{self.min_version or '*'} and {self.max_version or '*'}"
        )


class DeletionConflictError(ResolutionError):
    kind = ConflictKind.DELETION_CONFLICT

    def _describe(self) -> str:
        return f"{self.item} cannot be removed, {self.related} depends on it"


class MissingDependencyError(ResolutionError):
    kind = ConflictKind.MISSING_DEPENDENCY

    def _describe(self) -> str:
        missing = ", ".join(self.related or [])
        return f"{self.item} needs missing modules: {missing}"


class DependencyInstallError(ResolutionError):
    kind = ConflictKind.DEPENDENCY_INSTALL_FAILURE

    def _describe(self) -> str:
        return f"{self.item} cannot be installed because of {self.related}"


class DependencyRemoveError(ResolutionError):
    kind = ConflictKind.DEPENDENCY_REMOVE_FAILURE

    def _describe(self) -> str:
        return f"{self.item} cannot be removed because of {self.related}"
