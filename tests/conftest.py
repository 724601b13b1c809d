"""Pytest configuration and fixtures."""

import textwrap
from pathlib import Path

import pytest
import yaml

from core.components import ModuleComponent
from core.hooks import ModuleInstaller, ModuleUpgrader
from core.installer import Installer
from core.ledger import InstallLedger
from core.manifest import load_project
from core.reporter import MemoryReporter

HOOKS = ("pre_install", "install", "post_install", "pre_uninstall", "uninstall", "post_uninstall")


def write_yaml(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")


class ProjectBuilder:
    """Build a project tree: project.yaml, entry point configs and modules."""

    def __init__(self, root: Path):
        self.root = root
        self.entrypoints: list[dict] = []

    @property
    def ledger_path(self) -> Path:
        return self.root / "var" / "config" / "installer.ini"

    def add_module(
        self,
        name: str,
        version: str = "1.0",
        dependencies: list[dict] | None = None,
        date: str = "2024-01-01",
        install_py: str | None = None,
        upgraders: dict[str, str] | None = None,
    ) -> Path:
        path = self.root / "modules" / name
        write_yaml(path / "module.yaml", {
            "name": name,
            "version": version,
            "date": date,
            "dependencies": dependencies or [],
        })
        if install_py:
            (path / "install.py").write_text(textwrap.dedent(install_py), encoding="utf-8")
        for filename, source in (upgraders or {}).items():
            (path / filename).write_text(textwrap.dedent(source), encoding="utf-8")
        return path

    def add_entry_point(self, file: str, modules: dict, ep_type: str = "classic", config: str | None = None, **settings) -> Path:
        config = config or f"var/config/{Path(file).stem}.yaml"
        self.entrypoints.append({"file": file, "config": config, "type": ep_type})
        config_path = self.root / config
        if not config_path.exists():
            write_yaml(config_path, {"modules": modules, **settings})
        return config_path

    def write(self) -> Path:
        project_file = self.root / "project.yaml"
        write_yaml(project_file, {
            "name": "testapp",
            "modules_dirs": ["modules"],
            "entrypoints": self.entrypoints,
        })
        return project_file

    def ledger(self) -> InstallLedger:
        return InstallLedger(self.ledger_path)


class SpyInstaller(Installer):
    """Installer whose modules use in-memory handler classes."""

    def __init__(self, *args, handlers: dict | None = None, **kwargs):
        # module name -> (installer class, [upgrader classes])
        self.handlers = handlers or {}
        super().__init__(*args, **kwargs)

    def _create_component(self, manifest, path):
        installer_class, upgrader_classes = self.handlers.get(manifest.name, (None, []))
        return ModuleComponent(manifest, path, installer_class=installer_class, upgrader_classes=list(upgrader_classes))


def _make_recorder(base, calls: list, fail_on: str | None, error: Exception | None):
    def make_hook(hook):
        def method(self, ep):
            calls.append((self.component_name, hook, ep.id))
            if hook == fail_on:
                raise error or RuntimeError(f"{hook} failed")
        return method

    return type("Recording" + base.__name__, (base,), {hook: make_hook(hook) for hook in HOOKS})


@pytest.fixture
def project_builder(tmp_path):
    """Empty project tree under a temporary directory."""
    return ProjectBuilder(tmp_path)


@pytest.fixture
def calls():
    """Hook calls recorded by handlers, as (module, hook, entry point id)."""
    return []


@pytest.fixture
def recording_installer(calls):
    """Factory of ModuleInstaller classes recording their hook calls."""
    def factory(fail_on: str | None = None, error: Exception | None = None):
        return _make_recorder(ModuleInstaller, calls, fail_on, error)
    return factory


@pytest.fixture
def recording_upgrader(calls):
    """Factory of ModuleUpgrader classes recording their hook calls."""
    def factory(version: str, date: str = "", fail_on: str | None = None, error: Exception | None = None):
        cls = _make_recorder(ModuleUpgrader, calls, fail_on, error)
        cls.version = version
        cls.date = date
        return cls
    return factory


@pytest.fixture
def make_installer(project_builder):
    """Write the project and build an installer using in-memory handlers."""
    def factory(handlers: dict | None = None, reporter=None):
        project = load_project(project_builder.write())
        return SpyInstaller(project, reporter or MemoryReporter(), handlers=handlers)
    return factory
