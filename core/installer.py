"""Installation, upgrade and removal of the modules of an application.

The installer reads every entry point of a project. Each entry point has
its own set of activated modules and its own installation state in the
ledger. For each entry point, the dependency resolver computes the chain
of modules to install, upgrade or remove, then the installer runs the
handlers of these modules in three phases:

1. pre-phase: handlers are created and their pre hooks are called. A
   failure stops the entry point before any module is touched.
2. install phase: the main hook of each module is called, then the
   ledger is updated and saved, and the configuration of the entry point
   is reloaded. A failure stops the entry point; modules already processed
   stay installed.
3. post-phase: post hooks are called on processed modules.

An entry point failing stops the run: following entry points are not
processed.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from packaging.version import InvalidVersion, Version

from .components import ModuleComponent
from .entrypoint import EntryPointContext
from .errors import ConfigurationError, ConflictKind, InstallerError, ResolutionError
from .hooks import ModuleInstaller, ModuleUpgrader
from .ledger import InstallLedger
from .manifest import (
    EntryPointSpec,
    ModuleManifest,
    Project,
    discover_modules,
    load_module_manifest,
    load_project,
    module_settings,
)
from .messages import MessageProvider
from .models import Action, ChainItem, Flags, ModuleInfos
from .reporter import Reporter
from .resolver import DependencyResolver

logger = logging.getLogger(__name__)


def _check_installed_version(module_name: str, ep_id: str | None, version: str | None) -> None:
    if version is None:
        return
    try:
        Version(version)
    except InvalidVersion as e:
        where = f" in the entry point {ep_id}" if ep_id else ""
        raise ConfigurationError(f"Invalid installed version {version!r} of the module {module_name}{where}") from e


@dataclass
class PlannedAction:
    """A chain item with the handlers that will process it."""

    component: ModuleComponent
    action: Action
    installer: ModuleInstaller | None = None
    upgraders: list[ModuleUpgrader] = field(default_factory=list)


class Installer:
    """Drive the installation of the modules of all entry points.

    Args:
        project: Project to install
        reporter: Sink receiving progress and error messages
        ledger: Ledger to use, by default the one declared by the project
        lang: Language of messages
    """

    def __init__(
        self,
        project: Project,
        reporter: Reporter,
        ledger: InstallLedger | None = None,
        lang: str = "en",
    ):
        self.project = project
        self.reporter = reporter
        self.messages = MessageProvider(lang)
        self.ledger = ledger if ledger is not None else InstallLedger(project.ledger_path)

        self.entry_points: dict[str, EntryPointContext] = {}
        # entry point name (file) -> entry point id
        self._ep_ids: dict[str, str] = {}
        # entry point id -> module name -> component
        self.modules: dict[str, dict[str, ModuleComponent]] = {}
        self._all_modules: dict[Path, ModuleComponent] = {}

        self._read_entry_points()
        self.ledger.save()

    @classmethod
    def from_project_file(cls, path: str | Path, reporter: Reporter, **kwargs) -> "Installer":
        return cls(load_project(path), reporter, **kwargs)

    def _read_entry_points(self) -> None:
        available = discover_modules(self.project)
        config_files: set[Path] = set()

        for spec in self.project.manifest.entrypoints:
            config_path = self.project.config_path(spec)
            # entry points sharing a configuration share their modules
            if config_path in config_files:
                logger.info("Entry point %s ignored, its configuration is already used", spec.file)
                continue
            config_files.add(config_path)

            ep = self._create_entry_point(spec, config_path)
            self._ep_ids[spec.file] = ep.id
            self.entry_points[ep.id] = ep
            self.modules[ep.id] = {}

            settings = module_settings(ep.config)
            for name, module_config in settings.items():
                if name not in available:
                    raise ConfigurationError(f"Module {name} used by the entry point {ep.id} is not found")

                record = self.ledger.get_record(ep.id, name)
                installed = record is not None and record.installed
                if installed:
                    _check_installed_version(name, ep.id, record.version)
                infos = ModuleInfos(
                    name=name,
                    enabled=module_config.enabled,
                    installed=installed,
                    version=record.version if installed else None,
                    parameters=module_config.parameters,
                )
                ep.modules[name] = infos

                path = available[name]
                if path not in self._all_modules:
                    self._all_modules[path] = self._create_component(load_module_manifest(path), path)
                component = self._all_modules[path]
                component.add_module_infos(ep.id, infos)
                self.modules[ep.id][name] = component

            # forget modules which are not used anymore by the entry point
            for key in list(self.ledger.get_values(ep.id)):
                module_name, dot, _ = key.partition(".")
                if dot and module_name not in settings:
                    self.ledger.remove_value(key, ep.id)

    def _create_entry_point(self, spec: EntryPointSpec, config_path: Path) -> EntryPointContext:
        return EntryPointContext(spec.ep_id, spec.file, config_path, spec.type)

    def _create_component(self, manifest: ModuleManifest, path: Path) -> ModuleComponent:
        return ModuleComponent(manifest, path)

    def get_entry_point(self, ep_id: str) -> EntryPointContext:
        return self.entry_points[ep_id]

    def force_module_version(self, module_name: str, version: str | None) -> None:
        """Change the installed version known for a module, in every entry point.

        Used to simulate an upgrade on the next installation.
        """
        _check_installed_version(module_name, None, version)
        for ep_id, components in self.modules.items():
            if module_name in components:
                components[module_name].set_installed_version(ep_id, version)

    def set_module_parameters(self, module_name: str, parameters: dict, entrypoint: str | None = None) -> None:
        """Set the parameters given to the installer of a module.

        Args:
            module_name: Module name
            parameters: Parameters for its handlers
            entrypoint: Entry point name, None for all entry points
        """
        if entrypoint is not None:
            ep_id = self._ep_ids.get(entrypoint, entrypoint)
            if ep_id in self.modules and module_name in self.modules[ep_id]:
                self.modules[ep_id][module_name].set_install_parameters(ep_id, parameters)
            return

        for ep_id, components in self.modules.items():
            if module_name in components:
                components[module_name].set_install_parameters(ep_id, parameters)

    def get_modules_status(self, entrypoint: str | None = None) -> list[dict]:
        """Installation state of every module, per entry point.

        Args:
            entrypoint: Entry point name or id, None for all entry points

        Returns:
            One dict per (entry point, module), with the action the next
            installation would do
        """
        ep_ids = list(self.entry_points) if entrypoint is None else [self._get_ep_id(entrypoint)]
        rows = []
        for ep_id in ep_ids:
            for name, component in self.modules[ep_id].items():
                infos = component.get_module_infos(ep_id)
                rows.append({
                    "entrypoint": ep_id,
                    "module": name,
                    "enabled": infos.enabled,
                    "installed": infos.installed,
                    "version": infos.version,
                    "source_version": component.source_version,
                    "pending": component.get_resolver_item(ep_id).action.value,
                })
        return rows

    def install_application(self, flags: Flags | int = Flags.ALL) -> bool:
        """Install or upgrade the activated modules of every entry point.

        Args:
            flags: Actions whose hooks are executed, see Flags

        Returns:
            True if every entry point succeeded
        """
        self.reporter.start()
        try:
            chains = {
                ep_id: self._resolve_dependencies(self._build_resolver(ep_id), ep_id)
                for ep_id in self.entry_points
            }
            return self._install_modules(chains, True, Flags(flags))
        finally:
            self.reporter.end()

    def install_entry_point(self, entrypoint: str, flags: Flags | int = Flags.ALL) -> bool:
        """Install or upgrade the activated modules of one entry point.

        Args:
            entrypoint: Entry point name as declared in the project, or its id
            flags: Actions whose hooks are executed, see Flags

        Raises:
            ConfigurationError: if the entry point is unknown
        """
        ep_id = self._get_ep_id(entrypoint)
        self.reporter.start()
        try:
            chains = {ep_id: self._resolve_dependencies(self._build_resolver(ep_id), ep_id)}
            return self._install_modules(chains, True, Flags(flags))
        finally:
            self.reporter.end()

    def install_modules(self, names: list[str], entrypoint: str | None = None) -> bool:
        """Install the given modules, even if they are not activated."""
        return self._single_modules(Action.INSTALL, names, entrypoint)

    def uninstall_modules(self, names: list[str], entrypoint: str | None = None) -> bool:
        """Uninstall the given modules."""
        return self._single_modules(Action.REMOVE, names, entrypoint)

    def _single_modules(self, action: Action, names: list[str], entrypoint: str | None) -> bool:
        if entrypoint is None:
            ep_ids = list(self.entry_points)
        else:
            ep_ids = [self._get_ep_id(entrypoint)]

        self.reporter.start()
        try:
            # modules are bound per entry point configuration
            unknown = [name for name in names if not any(name in self.modules[ep_id] for ep_id in ep_ids)]
            for name in unknown:
                self._error("module.unknown", name)
            if unknown:
                return False

            chains: dict[str, list[ChainItem] | None] = {}
            for ep_id in ep_ids:
                bound = [name for name in names if name in self.modules[ep_id]]
                if len(bound) < len(names):
                    missing = ", ".join(name for name in names if name not in bound)
                    self._notice("module.unused.entrypoint", (ep_id, missing))
                if not bound:
                    continue

                resolver = self._build_resolver(ep_id, {name: action for name in bound})
                chains[ep_id] = self._resolve_dependencies(resolver, ep_id)
            return self._install_modules(chains, False)
        finally:
            self.reporter.end()

    def _get_ep_id(self, entrypoint: str) -> str:
        if entrypoint in self._ep_ids:
            return self._ep_ids[entrypoint]
        if entrypoint in self.entry_points:
            return entrypoint
        raise ConfigurationError(f"Unknown entry point {entrypoint}")

    def _build_resolver(self, ep_id: str, actions: dict[str, Action] | None = None) -> DependencyResolver:
        actions = actions or {}
        resolver = DependencyResolver()
        for name, component in self.modules[ep_id].items():
            resolver.add_item(component.get_resolver_item(ep_id, actions.get(name)))
        return resolver

    def _resolve_dependencies(self, resolver: DependencyResolver, ep_id: str) -> list[ChainItem] | None:
        try:
            chain = resolver.resolve()
        except ResolutionError as e:
            logger.warning("Dependencies of entry point %s cannot be resolved: %s", ep_id, e)
            self._error(*self._conflict_message(e))
        except ValueError:
            logger.exception("Dependencies of entry point %s cannot be resolved", ep_id)
            self._error("install.bad.dependencies")
        else:
            self._ok("install.dependencies.ok")
            return chain

        self._warning("install.entrypoint.bad.end", ep_id)
        return None

    @staticmethod
    def _conflict_message(e: ResolutionError) -> tuple[str, tuple]:
        if e.kind == ConflictKind.CIRCULAR_DEPENDENCY:
            return "module.circular.dependency", (e.item, " -> ".join(e.related or [e.item]))
        if e.kind == ConflictKind.VERSION_MISMATCH:
            return "module.bad.dependency.version", (e.item, e.related, e.min_version or "*", e.max_version or "*")
        if e.kind == ConflictKind.DELETION_CONFLICT:
            return "install.error.delete.dependency", (e.item, e.related)
        if e.kind == ConflictKind.MISSING_DEPENDENCY:
            return "module.needed", (e.item, ", ".join(e.related or []))
        if e.kind == ConflictKind.DEPENDENCY_INSTALL_FAILURE:
            return "install.error.install.dependency", (e.item, e.related)
        return "install.error.remove.dependency", (e.item, e.related)

    def _install_modules(
        self,
        chains: dict[str, list[ChainItem] | None],
        install_whole_app: bool,
        flags: Flags = Flags.ALL,
    ) -> bool:
        for ep_id, chain in chains.items():
            if chain is None:
                return False
            result = self._install_entry_point_modules(chain, ep_id, install_whole_app, flags)
            self.ledger.save()
            if not result:
                return False
        return True

    def _install_entry_point_modules(
        self,
        chain: list[ChainItem],
        ep_id: str,
        install_whole_app: bool,
        flags: Flags,
    ) -> bool:
        self._notice("install.entrypoint.start", ep_id)
        ep = self.entry_points[ep_id]

        if ep.disable_installers:
            self._notice("install.entrypoint.installers.disabled")

        planned = self._run_pre_install(chain, ep, install_whole_app, flags)
        if planned is None:
            self._warning("install.entrypoint.bad.end", ep_id)
            return False

        done = self._run_install(planned, ep, flags)
        if done is None:
            self._warning("install.entrypoint.bad.end", ep_id)
            return False

        if not self._run_post_install(done, ep, flags):
            self._warning("install.entrypoint.bad.end", ep_id)
            return False

        self._ok("install.entrypoint.end", ep_id)
        return True

    def _plan(self, chain_item: ChainItem, ep: EntryPointContext, install_whole_app: bool) -> PlannedAction:
        component = self.modules[ep.id][chain_item.name]
        step = PlannedAction(component, chain_item.action)
        if ep.disable_installers:
            return step

        if chain_item.action == Action.UPGRADE:
            step.upgraders = component.get_upgraders(ep)
        else:
            step.installer = component.get_installer(ep, install_whole_app)
        return step

    def _run_pre_install(
        self,
        chain: list[ChainItem],
        ep: EntryPointContext,
        install_whole_app: bool,
        flags: Flags,
    ) -> list[PlannedAction] | None:
        planned = []
        for chain_item in chain:
            try:
                step = self._plan(chain_item, ep, install_whole_app)
                planned.append(step)

                if step.action == Action.INSTALL:
                    if step.installer and flags & Flags.INSTALL:
                        step.installer.pre_install(ep)
                elif step.action == Action.UPGRADE:
                    if flags & Flags.UPGRADE:
                        for upgrader in step.upgraders:
                            upgrader.pre_install(ep)
                elif step.action == Action.REMOVE:
                    if step.installer and flags & Flags.REMOVE:
                        step.installer.pre_uninstall(ep)
            except Exception as e:
                self._report_hook_error(chain_item.name, e)
                return None
        return planned

    def _run_install(
        self,
        planned: list[PlannedAction],
        ep: EntryPointContext,
        flags: Flags,
    ) -> list[PlannedAction] | None:
        done = []
        for step in planned:
            component = step.component
            try:
                if step.action == Action.INSTALL:
                    if step.installer and flags & Flags.INSTALL:
                        step.installer.install(ep)
                    self._record_installation(ep.id, component)
                    self.ledger.save()
                    self._ok("install.module.installed", component.name)

                elif step.action == Action.UPGRADE:
                    last_version = None
                    for upgrader in step.upgraders:
                        if flags & Flags.UPGRADE:
                            upgrader.install(ep)
                        # saved now, so this step is not run again if a next one fails
                        self._record_version(ep.id, component, upgrader.version, upgrader.date)
                        self.ledger.save()
                        self._ok("install.module.upgraded", (component.name, upgrader.version))
                        last_version = upgrader.version

                    if last_version is None or Version(last_version) != Version(component.source_version):
                        self._record_version(ep.id, component, component.source_version, component.source_date)
                        self.ledger.save()
                        self._ok("install.module.upgraded", (component.name, component.source_version))

                elif step.action == Action.REMOVE:
                    if step.installer and flags & Flags.REMOVE:
                        step.installer.uninstall(ep)
                    self._record_removal(ep.id, component)
                    self.ledger.save()
                    self._ok("install.module.uninstalled", component.name)

                done.append(step)
                # the handler may have modified the configuration
                ep.reload_config()
            except Exception as e:
                self._report_hook_error(component.name, e)
                return None
        return done

    def _run_post_install(self, done: list[PlannedAction], ep: EntryPointContext, flags: Flags) -> bool:
        result = True
        for step in done:
            try:
                if step.action == Action.INSTALL:
                    if step.installer and flags & Flags.INSTALL:
                        step.installer.post_install(ep)
                elif step.action == Action.UPGRADE:
                    if flags & Flags.UPGRADE:
                        for upgrader in step.upgraders:
                            upgrader.post_install(ep)
                elif step.action == Action.REMOVE:
                    if step.installer and flags & Flags.REMOVE:
                        step.installer.post_uninstall(ep)
                ep.reload_config()
            except Exception as e:
                self._report_hook_error(step.component.name, e)
                result = False
        return result

    def _record_installation(self, ep_id: str, component: ModuleComponent) -> None:
        name = component.name
        self.ledger.set_value(f"{name}.installed", 1, ep_id)
        self.ledger.set_value(f"{name}.version", component.source_version, ep_id)
        self.ledger.set_value(f"{name}.version.date", component.source_date, ep_id)
        self.ledger.set_value(f"{name}.firstversion", component.source_version, ep_id)
        self.ledger.set_value(f"{name}.firstversion.date", component.source_date, ep_id)
        component.set_installed_version(ep_id, component.source_version)

    def _record_version(self, ep_id: str, component: ModuleComponent, version: str, date: str) -> None:
        self.ledger.set_value(f"{component.name}.version", version, ep_id)
        self.ledger.set_value(f"{component.name}.version.date", date, ep_id)
        component.set_installed_version(ep_id, version)

    def _record_removal(self, ep_id: str, component: ModuleComponent) -> None:
        self.ledger.remove_module(ep_id, component.name)
        component.set_installed_version(ep_id, None)

    def _report_hook_error(self, module_name: str, e: Exception) -> None:
        logger.error("Module %s failed", module_name, exc_info=e)
        if isinstance(e, InstallerError):
            detail = self.messages.get(e.key, e.params)
        else:
            detail = str(e) or e.__class__.__name__
        self._error("install.module.error", (module_name, detail))

    def _error(self, key: str, params=None) -> None:
        self.reporter.message(self.messages.get(key, params), "error")

    def _warning(self, key: str, params=None) -> None:
        self.reporter.message(self.messages.get(key, params), "warning")

    def _notice(self, key: str, params=None) -> None:
        self.reporter.message(self.messages.get(key, params), "notice")

    def _ok(self, key: str, params=None) -> None:
        self.reporter.message(self.messages.get(key, params), "")
