"""Dependency resolution for module installation chains."""

import logging
from graphlib import CycleError, TopologicalSorter

from packaging.specifiers import SpecifierSet
from packaging.version import InvalidVersion, Version

from .errors import (
    CircularDependencyError,
    DeletionConflictError,
    DependencyInstallError,
    DependencyRemoveError,
    MissingDependencyError,
    VersionMismatchError,
)
from .models import (
    INSTALL_ERROR_CIRCULAR_DEPENDENCY,
    INSTALL_ERROR_MISSING_DEPENDENCIES,
    Action,
    ChainItem,
    Dependency,
    ModuleItem,
)

logger = logging.getLogger(__name__)

_CHANGING = (Action.INSTALL, Action.UPGRADE)


def version_in_range(version: str, min_version: str | None, max_version: str | None) -> bool:
    """Check that a version lies within inclusive bounds.

    Args:
        version: Version to check
        min_version: Lowest accepted version, None or "*" for no bound
        max_version: Highest accepted version, None or "*" for no bound

    Returns:
        True if the version is accepted
    """
    clauses = []
    if min_version and min_version != "*":
        clauses.append(f">={min_version}")
    if max_version and max_version != "*":
        clauses.append(f"<={max_version}")
    if not clauses:
        return True

    try:
        return SpecifierSet(",".join(clauses)).contains(Version(version), prereleases=True)
    except InvalidVersion:
        return False


class DependencyResolver:
    """Compute the order in which modules of one entry point are processed.

    Items are kept in the order they were added; that order is used to
    break ties, so two runs on the same input give the same chain.
    """

    def __init__(self):
        self._items: dict[str, ModuleItem] = {}

    def add_item(self, item: ModuleItem) -> None:
        if item.name in self._items:
            raise ValueError(f"Module {item.name} added twice to the resolver")
        self._items[item.name] = item

    @property
    def items(self) -> list[ModuleItem]:
        return list(self._items.values())

    def get_item(self, name: str) -> ModuleItem | None:
        return self._items.get(name)

    def resolve(self) -> list[ChainItem]:
        """Build the chain of actions to execute.

        Removals come first, each after the modules depending on it.
        Installations and upgrades follow, each after its dependencies.
        Not installed dependencies of installed modules are added to the
        chain as installations.

        Returns:
            Ordered list of chain items

        Raises:
            ResolutionError: on the first conflict found
        """
        self._check_installations()
        self._check_installed_dependents()
        self._check_removals()

        removed = [item.name for item in self._items.values() if item.action == Action.REMOVE]
        changed = [item.name for item in self._items.values() if item.action in _CHANGING]

        dependents = {
            name: {other for other in removed if self._depends_on(self._items[other], name)}
            for name in removed
        }
        requirements = {
            name: {
                dep.name for dep in self._module_dependencies(self._items[name]) if dep.name in changed
            }
            for name in changed
        }

        chain = [
            ChainItem(self._items[name], Action.REMOVE)
            for name in self._stable_order(removed, dependents)
        ]
        chain.extend(
            ChainItem(self._items[name], self._items[name].action)
            for name in self._stable_order(changed, requirements)
        )
        logger.debug("Resolved chain: %s", [(c.name, c.action.value) for c in chain])
        return chain

    def _check_installations(self) -> None:
        queue = [item for item in self._items.values() if item.action in _CHANGING]
        checked: set[str] = set()

        while queue:
            item = queue.pop(0)
            if item.name in checked:
                continue
            checked.add(item.name)

            dependencies = self._module_dependencies(item)
            missing = [dep.name for dep in dependencies if dep.name not in self._items]
            if missing:
                item.in_error = INSTALL_ERROR_MISSING_DEPENDENCIES
                raise MissingDependencyError(item.name, missing)

            for dep in dependencies:
                target = self._items[dep.name]
                if target.in_error is not None or target.action == Action.REMOVE:
                    raise DependencyInstallError(item.name, target.name)

                if target.action == Action.NONE and not target.is_installed:
                    logger.debug("Module %s needed by %s, adding it for installation", target.name, item.name)
                    target.action = Action.INSTALL
                    queue.append(target)

                self._check_version(item, dep, target)

    def _check_installed_dependents(self) -> None:
        # modules staying as they are must accept the new versions of what they use
        for item in self._items.values():
            if item.action != Action.NONE or not item.is_installed:
                continue
            for dep in self._module_dependencies(item):
                target = self._items.get(dep.name)
                if target is not None and target.action == Action.UPGRADE:
                    self._check_version(item, dep, target)

    def _check_removals(self) -> None:
        for item in self._items.values():
            if item.action != Action.REMOVE:
                continue
            for other in self._items.values():
                if other is item or not self._depends_on(other, item.name):
                    continue
                if other.action == Action.REMOVE:
                    if other.in_error is not None:
                        raise DependencyRemoveError(item.name, other.name)
                    continue
                if other.is_installed or other.action in _CHANGING:
                    raise DeletionConflictError(item.name, other.name)

    def _check_version(self, item: ModuleItem, dep: Dependency, target: ModuleItem) -> None:
        version = target.next_version
        if version is None:
            return
        if not version_in_range(version, dep.min_version, dep.max_version):
            raise VersionMismatchError(item.name, target.name, dep.min_version, dep.max_version)

    def _stable_order(self, names: list[str], predecessors: dict[str, set[str]]) -> list[str]:
        ordered: list[str] = []
        done: set[str] = set()
        pending = list(names)

        while pending:
            for name in pending:
                if predecessors[name] <= done:
                    break
            else:
                cycle = self._find_cycle(pending, predecessors)
                for name in cycle:
                    self._items[name].in_error = INSTALL_ERROR_CIRCULAR_DEPENDENCY
                raise CircularDependencyError(cycle[0], cycle)

            pending.remove(name)
            done.add(name)
            ordered.append(name)

        return ordered

    @staticmethod
    def _find_cycle(pending: list[str], predecessors: dict[str, set[str]]) -> list[str]:
        remaining = set(pending)
        graph = {name: predecessors[name] & remaining for name in pending}
        try:
            TopologicalSorter(graph).prepare()
        except CycleError as e:
            return list(e.args[1])
        return pending

    @staticmethod
    def _module_dependencies(item: ModuleItem) -> list[Dependency]:
        return [dep for dep in item.dependencies if dep.type == "module"]

    def _depends_on(self, item: ModuleItem, name: str) -> bool:
        return any(dep.name == name for dep in self._module_dependencies(item))
