"""Human readable messages emitted during an installation."""

MESSAGES = {
    "en": {
        "install.entrypoint.start": "Installation of modules for the entry point %s",
        "install.entrypoint.end": "All modules are installed or upgraded for the entry point %s",
        "install.entrypoint.bad.end": "Installation of modules for the entry point %s has failed",
        "install.entrypoint.installers.disabled": "Installers are disabled for this entry point: only the installation status of modules is updated",
        "install.dependencies.ok": "Dependencies of modules are resolved",
        "install.bad.dependencies": "Error while resolving dependencies of modules",
        "install.module.installed": "Module %s is installed",
        "install.module.upgraded": "Module %s is upgraded to the version %s",
        "install.module.uninstalled": "Module %s is uninstalled",
        "install.module.error": "Error during the installation of the module %s: %s",
        "install.handler.invalid": "Module %s: the file %s cannot be loaded (%s)",
        "install.handler.missing": "Module %s: the file %s does not define a %s class",
        "install.upgrader.version": "Module %s: the upgrader %s has an invalid version %r",
        "install.error.delete.dependency": "Module %s cannot be uninstalled: the module %s depends on it",
        "install.error.install.dependency": "Module %s cannot be installed: its dependency %s is in error or is going to be uninstalled",
        "install.error.remove.dependency": "Module %s cannot be uninstalled: the module %s depending on it is in error",
        "module.unknown": "Unknown module: %s",
        "module.unused.entrypoint": "The entry point %s does not use the modules %s",
        "module.circular.dependency": "Circular dependency for the module %s (%s)",
        "module.bad.dependency.version": "Module %s needs a version of %s between %s and %s",
        "module.needed": "To install the module %s, these modules should be present: %s",
    },
}


class MessageProvider:
    """Format messages from their key."""

    def __init__(self, lang: str = "en"):
        self.lang = lang if lang in MESSAGES else "en"
        self._messages = MESSAGES[self.lang]

    def get(self, key: str, params=None) -> str:
        template = self._messages.get(key)
        if template is None:
            return key if params is None else f"{key} {params}"

        if params is None:
            params = ()
        elif not isinstance(params, (list, tuple)):
            params = (params,)

        try:
            return template % tuple(params)
        except (TypeError, ValueError):
            return f"{template} {tuple(params)}"
