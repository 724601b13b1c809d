"""Unit tests for module components and their handlers."""

import pytest

from core.components import ModuleComponent
from core.entrypoint import EntryPointContext
from core.errors import InstallerError
from core.hooks import ModuleInstaller, ModuleUpgrader
from core.manifest import ModuleManifest
from core.models import Action, ModuleInfos


def make_component(path, version="2.0", **kwargs):
    manifest = ModuleManifest.model_validate({
        "name": "news",
        "version": version,
        "date": "2024-06-01",
        "dependencies": [{"name": "tags", "min_version": "1.0"}],
    })
    return ModuleComponent(manifest, path, **kwargs)


def upgrader(version):
    return type(f"Upgrade{version.replace('.', '')}", (ModuleUpgrader,), {"version": version})


class TestResolverItem:
    """Test the action computed for an entry point."""

    def setup_method(self):
        self.component = make_component("/tmp/news")

    def item_for(self, infos, action=None):
        self.component.add_module_infos("index", infos)
        return self.component.get_resolver_item("index", action)

    def test_not_installed(self):
        """Should install a module which is not installed."""
        item = self.item_for(ModuleInfos("news"))
        assert item.action == Action.INSTALL
        assert item.current_version is None
        assert item.dependencies[0].name == "tags"

    def test_not_installed_disabled(self):
        """Should not install a disabled module."""
        assert self.item_for(ModuleInfos("news", enabled=False)).action == Action.NONE

    def test_outdated(self):
        """Should upgrade an older installed version."""
        item = self.item_for(ModuleInfos("news", installed=True, version="1.0"))
        assert item.action == Action.UPGRADE
        assert item.current_version == "1.0"

    def test_up_to_date(self):
        assert self.item_for(ModuleInfos("news", installed=True, version="2.0")).action == Action.NONE

    def test_installed_without_version(self):
        """Should consider a module without version as up to date."""
        item = self.item_for(ModuleInfos("news", installed=True))
        assert item.current_version == "2.0"
        assert item.action == Action.NONE

    def test_install_of_installed_module(self):
        """Should turn an explicit install of an installed module into an upgrade."""
        infos = ModuleInfos("news", installed=True, version="1.0")
        assert self.item_for(infos, Action.INSTALL).action == Action.UPGRADE

    def test_remove_of_uninstalled_module(self):
        """Should ignore the removal of a module which is not installed."""
        assert self.item_for(ModuleInfos("news"), Action.REMOVE).action == Action.NONE

    def test_set_installed_version(self):
        infos = ModuleInfos("news")
        self.component.add_module_infos("index", infos)

        self.component.set_installed_version("index", "1.5")
        assert infos.installed and infos.version == "1.5"

        self.component.set_installed_version("index", None)
        assert not infos.installed


class TestHandlers:
    """Test handler creation and discovery."""

    def setup_method(self):
        self.ep = EntryPointContext("index", "index.py", "/nonexistent/index.yaml")

    def test_given_installer_class(self, tmp_path):
        """Should pass parameters to the installer."""
        component = make_component(tmp_path, installer_class=ModuleInstaller)
        component.add_module_infos("index", ModuleInfos("news", parameters={"wiki": "on"}))

        installer = component.get_installer(self.ep, True)
        assert isinstance(installer, ModuleInstaller)
        assert installer.component_name == "news"
        assert installer.get_parameter("wiki") == "on"
        assert installer.get_parameter("missing", "x") == "x"
        assert installer.install_whole_app

    def test_no_installer_file(self, tmp_path):
        """Should return no installer without install.py."""
        component = make_component(tmp_path)
        component.add_module_infos("index", ModuleInfos("news"))
        assert component.get_installer(self.ep, False) is None

    def test_load_installer_file(self, tmp_path):
        """Should load the installer class from install.py."""
        (tmp_path / "install.py").write_text(
            "from core.hooks import ModuleInstaller\n\n\n"
            "class NewsInstaller(ModuleInstaller):\n"
            "    def install(self, ep):\n"
            "        self.done = True\n",
            encoding="utf-8",
        )
        component = make_component(tmp_path)
        component.add_module_infos("index", ModuleInfos("news"))

        installer = component.get_installer(self.ep, False)
        assert type(installer).__name__ == "NewsInstaller"
        installer.install(self.ep)
        assert installer.done

    def test_installer_file_without_class(self, tmp_path):
        """Should fail when install.py defines no installer."""
        (tmp_path / "install.py").write_text("VALUE = 1\n", encoding="utf-8")
        component = make_component(tmp_path)
        component.add_module_infos("index", ModuleInfos("news"))

        with pytest.raises(InstallerError) as exc_info:
            component.get_installer(self.ep, False)
        assert exc_info.value.key == "install.handler.missing"

    def test_broken_installer_file(self, tmp_path):
        """Should fail when install.py cannot be imported."""
        (tmp_path / "install.py").write_text("raise RuntimeError('boom')\n", encoding="utf-8")
        component = make_component(tmp_path)
        component.add_module_infos("index", ModuleInfos("news"))

        with pytest.raises(InstallerError) as exc_info:
            component.get_installer(self.ep, False)
        assert exc_info.value.key == "install.handler.invalid"
        assert "boom" in exc_info.value.params[2]

    def test_upgraders_between_versions(self, tmp_path):
        """Should select and sort upgraders above the installed version."""
        classes = [upgrader(v) for v in ("3.0", "1.5", "1.0", "2.0", "1.2")]
        component = make_component(tmp_path, upgrader_classes=classes)
        component.add_module_infos("index", ModuleInfos("news", installed=True, version="1.0"))

        versions = [u.version for u in component.get_upgraders(self.ep)]
        assert versions == ["1.2", "1.5", "2.0"]

    def test_upgrader_with_invalid_version(self, tmp_path):
        """Should fail on an upgrader with an invalid version."""
        component = make_component(tmp_path, upgrader_classes=[upgrader("next")])
        component.add_module_infos("index", ModuleInfos("news", installed=True, version="1.0"))

        with pytest.raises(InstallerError) as exc_info:
            component.get_upgraders(self.ep)
        assert exc_info.value.key == "install.upgrader.version"

    def test_load_upgrader_files(self, tmp_path):
        """Should load upgraders from upgrade_*.py files."""
        for version in ("1.5", "2.0"):
            (tmp_path / f"upgrade_{version.replace('.', '_')}.py").write_text(
                "from core.hooks import ModuleUpgrader\n\n\n"
                "class Upgrade(ModuleUpgrader):\n"
                f"    version = '{version}'\n",
                encoding="utf-8",
            )
        component = make_component(tmp_path)
        component.add_module_infos("index", ModuleInfos("news", installed=True, version="1.0"))

        assert [u.version for u in component.get_upgraders(self.ep)] == ["1.5", "2.0"]
