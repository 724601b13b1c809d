"""FastAPI web application for modinstall."""

import logging
import os
from collections.abc import Callable
from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from core.errors import ConfigurationError, InstallLockedError
from core.installer import Installer
from core.lock import InstallLock
from core.manifest import load_project
from core.models import Flags
from core.reporter import GhostReporter, MemoryReporter

logger = logging.getLogger(__name__)

app = FastAPI(
    title="modinstall",
    description="Install, upgrade and remove the modules of an application",
    version="0.1.0",
)


class InstallRequest(BaseModel):
    """Request model for installing the application or one entry point."""
    entrypoint: Optional[str] = None
    flags: int = Field(default=int(Flags.ALL), ge=0, le=7)


class ModulesRequest(BaseModel):
    """Request model for installing or uninstalling some modules."""
    modules: list[str] = Field(min_length=1)
    entrypoint: Optional[str] = None


class Message(BaseModel):
    severity: str
    text: str


class InstallResponse(BaseModel):
    """Response model for installation operations."""
    success: bool
    messages: list[Message]


def get_project_path() -> str:
    return os.environ.get("MODINSTALL_PROJECT", "project.yaml")


def _run(operation: Callable[[Installer], bool]) -> InstallResponse:
    reporter = MemoryReporter()
    try:
        project = load_project(get_project_path())
        with InstallLock(project.lock_path):
            success = operation(Installer(project, reporter))
    except InstallLockedError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Installation request failed")
        raise HTTPException(status_code=500, detail=f"Error during installation: {str(e)}")

    return InstallResponse(
        success=success,
        messages=[Message(severity=severity, text=text) for severity, text in reporter.messages],
    )


@app.get("/api/entrypoints")
def list_entry_points(entrypoint: Optional[str] = None):
    """Installation state of modules, grouped by entry point."""
    try:
        project = load_project(get_project_path())
        with InstallLock(project.lock_path):
            rows = Installer(project, GhostReporter()).get_modules_status(entrypoint)
    except InstallLockedError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    grouped: dict[str, list[dict]] = {}
    for row in rows:
        grouped.setdefault(row.pop("entrypoint"), []).append(row)
    return {"entrypoints": [{"id": ep_id, "modules": modules} for ep_id, modules in grouped.items()]}


@app.post("/api/install", response_model=InstallResponse)
def install(request: InstallRequest):
    """Install or upgrade activated modules of the application or of one entry point."""
    if request.entrypoint:
        return _run(lambda installer: installer.install_entry_point(request.entrypoint, request.flags))
    return _run(lambda installer: installer.install_application(request.flags))


@app.post("/api/modules/install", response_model=InstallResponse)
def install_modules(request: ModulesRequest):
    """Install the given modules."""
    return _run(lambda installer: installer.install_modules(request.modules, request.entrypoint))


@app.post("/api/modules/uninstall", response_model=InstallResponse)
def uninstall_modules(request: ModulesRequest):
    """Uninstall the given modules."""
    return _run(lambda installer: installer.uninstall_modules(request.modules, request.entrypoint))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8000)
