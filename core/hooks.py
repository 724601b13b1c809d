"""Lifecycle handlers provided by modules."""

from pathlib import Path
from typing import Any

from .entrypoint import EntryPointContext


class ModuleInstaller:
    """Base class of the install.py handler of a module.

    Every hook receives the context of the entry point being processed.
    Hooks report failures by raising InstallerError; any other exception
    is reported as an error of the module too.
    """

    def __init__(
        self,
        component_name: str,
        path: str | Path,
        parameters: dict[str, Any] | None = None,
        install_whole_app: bool = False,
    ):
        self.component_name = component_name
        self.path = Path(path)
        self.parameters = dict(parameters or {})
        self.install_whole_app = install_whole_app

    def pre_install(self, ep: EntryPointContext) -> None:
        pass

    def install(self, ep: EntryPointContext) -> None:
        pass

    def post_install(self, ep: EntryPointContext) -> None:
        pass

    def pre_uninstall(self, ep: EntryPointContext) -> None:
        pass

    def uninstall(self, ep: EntryPointContext) -> None:
        pass

    def post_uninstall(self, ep: EntryPointContext) -> None:
        pass

    def get_parameter(self, name: str, default: Any = None) -> Any:
        return self.parameters.get(name, default)


class ModuleUpgrader(ModuleInstaller):
    """Handler of one upgrade step, defined in an upgrade_*.py file.

    Subclasses set `version`, the version of the module once the step is
    applied, and `date`, the release date of that version.
    """

    version: str = ""
    date: str = ""
