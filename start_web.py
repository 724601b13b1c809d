#!/usr/bin/env python3
"""Start the modinstall web application."""

import os

import uvicorn

if __name__ == "__main__":
    print("Starting modinstall web application...")
    print(f"Project: {os.environ.get('MODINSTALL_PROJECT', 'project.yaml')}")
    print("URL: http://localhost:8000")
    print("API docs: http://localhost:8000/docs")
    print("Press Ctrl+C to stop")
    print()

    uvicorn.run(
        "apps.web.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
        reload_dirs=["apps", "core"]
    )
