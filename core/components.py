"""Modules of the application and the handlers they provide."""

import importlib.util
import logging
from pathlib import Path
from types import ModuleType

from packaging.version import InvalidVersion, Version

from .entrypoint import EntryPointContext
from .errors import InstallerError
from .hooks import ModuleInstaller, ModuleUpgrader
from .manifest import ModuleManifest
from .models import Action, ModuleInfos, ModuleItem, derive_action

logger = logging.getLogger(__name__)

INSTALLER_FILE = "install.py"
UPGRADER_PATTERN = "upgrade_*.py"

_NOT_LOADED = object()


class ModuleComponent:
    """A module directory, shared by every entry point using it.

    Installed state is kept per entry point id. Handler classes are read
    from install.py and upgrade_*.py the first time they are needed,
    unless given to the constructor.
    """

    def __init__(
        self,
        manifest: ModuleManifest,
        path: str | Path,
        installer_class: type[ModuleInstaller] | None | object = _NOT_LOADED,
        upgrader_classes: list[type[ModuleUpgrader]] | None = None,
    ):
        self.manifest = manifest
        self.path = Path(path)
        self._infos: dict[str, ModuleInfos] = {}
        self._installer_class = installer_class
        self._upgrader_classes = upgrader_classes

    @property
    def name(self) -> str:
        return self.manifest.name

    @property
    def source_version(self) -> str:
        return self.manifest.version

    @property
    def source_date(self) -> str:
        return self.manifest.date

    def add_module_infos(self, ep_id: str, infos: ModuleInfos) -> None:
        self._infos[ep_id] = infos

    def get_module_infos(self, ep_id: str) -> ModuleInfos:
        return self._infos[ep_id]

    def set_installed_version(self, ep_id: str, version: str | None) -> None:
        infos = self._infos[ep_id]
        infos.version = version
        infos.installed = version is not None

    def set_install_parameters(self, ep_id: str, parameters: dict) -> None:
        self._infos[ep_id].parameters = dict(parameters)

    def get_resolver_item(self, ep_id: str, action: Action | None = None) -> ModuleItem:
        """Build the resolver item of the module for an entry point.

        Args:
            ep_id: Entry point id
            action: Action requested explicitly, None to derive it from versions

        Returns:
            Resolver item
        """
        infos = self._infos[ep_id]
        current = None
        if infos.installed:
            current = infos.version or self.source_version

        if action is None:
            action = derive_action(current, self.source_version, infos.enabled)
        elif action == Action.INSTALL and current is not None:
            # already there: only an upgrade may be needed
            action = derive_action(current, self.source_version)
        elif action == Action.REMOVE and current is None:
            action = Action.NONE

        return ModuleItem(
            name=self.name,
            current_version=current,
            source_version=self.source_version,
            dependencies=self.manifest.to_dependencies(),
            action=action,
        )

    def get_installer(self, ep: EntryPointContext, install_whole_app: bool) -> ModuleInstaller | None:
        if self._installer_class is _NOT_LOADED:
            self._installer_class = self._load_installer_class()
        if self._installer_class is None:
            return None
        return self._installer_class(
            self.name,
            self.path,
            parameters=self._infos[ep.id].parameters,
            install_whole_app=install_whole_app,
        )

    def get_upgraders(self, ep: EntryPointContext) -> list[ModuleUpgrader]:
        """Upgraders to apply, one per version between installed and source.

        Args:
            ep: Entry point being upgraded

        Returns:
            Upgraders sorted by version
        """
        if self._upgrader_classes is None:
            self._upgrader_classes = self._load_upgrader_classes()

        infos = self._infos[ep.id]
        current = Version(infos.version or "0")
        target = Version(self.source_version)

        selected = []
        for cls in self._upgrader_classes:
            try:
                version = Version(cls.version)
            except InvalidVersion:
                raise InstallerError("install.upgrader.version", (self.name, cls.__name__, cls.version))
            if current < version <= target:
                selected.append((version, cls))

        selected.sort(key=lambda pair: pair[0])
        return [
            cls(self.name, self.path, parameters=infos.parameters, install_whole_app=False)
            for _, cls in selected
        ]

    def _load_installer_class(self) -> type[ModuleInstaller] | None:
        file = self.path / INSTALLER_FILE
        if not file.is_file():
            return None
        module = self._import_file(file)
        return self._find_class(module, file, ModuleInstaller)

    def _load_upgrader_classes(self) -> list[type[ModuleUpgrader]]:
        classes = []
        for file in sorted(self.path.glob(UPGRADER_PATTERN)):
            module = self._import_file(file)
            classes.append(self._find_class(module, file, ModuleUpgrader))
        return classes

    def _import_file(self, file: Path) -> ModuleType:
        module_name = f"modinstall_handlers.{self.name}.{file.stem}"
        spec = importlib.util.spec_from_file_location(module_name, file)
        if spec is None or spec.loader is None:
            raise InstallerError("install.handler.invalid", (self.name, file.name, "cannot be loaded"))
        module = importlib.util.module_from_spec(spec)
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            raise InstallerError("install.handler.invalid", (self.name, file.name, str(e))) from e
        logger.debug("Loaded handlers of %s from %s", self.name, file)
        return module

    def _find_class(self, module: ModuleType, file: Path, base: type) -> type:
        for obj in vars(module).values():
            if (
                isinstance(obj, type)
                and issubclass(obj, base)
                and obj.__module__ == module.__name__
            ):
                return obj
        raise InstallerError("install.handler.missing", (self.name, file.name, base.__name__))
