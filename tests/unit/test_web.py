"""Tests for web application functionality."""

import os

import pytest
from fastapi.testclient import TestClient

from apps.web.main import app


class TestWebApp:
    """Test web application endpoints."""

    @pytest.fixture(autouse=True)
    def project(self, project_builder, monkeypatch):
        project_builder.add_module("news", dependencies=[{"name": "tags"}])
        project_builder.add_module("tags")
        project_builder.add_entry_point("index.py", {"news": True, "tags": True})
        project_builder.add_entry_point("admin.py", {"tags": False})
        monkeypatch.setenv("MODINSTALL_PROJECT", str(project_builder.write()))
        self.builder = project_builder
        self.client = TestClient(app)

    def test_list_entry_points(self):
        """Should list modules grouped by entry point."""
        response = self.client.get("/api/entrypoints")

        assert response.status_code == 200
        data = response.json()
        assert [ep["id"] for ep in data["entrypoints"]] == ["index", "admin"]
        news = data["entrypoints"][0]["modules"][0]
        assert news["module"] == "news"
        assert news["installed"] is False
        assert news["pending"] == "install"

    def test_install_application(self):
        """Should install modules and return the messages."""
        response = self.client.post("/api/install", json={})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert {"severity": "", "text": "Module news is installed"} in data["messages"]
        assert self.builder.ledger().get_value("news.installed", "index") == "1"

    def test_install_entry_point(self):
        """Should only install the given entry point."""
        response = self.client.post("/api/install", json={"entrypoint": "admin.py"})

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert self.builder.ledger().get_record("index", "news") is None

    def test_install_unknown_entry_point(self):
        """Should reject an unknown entry point."""
        response = self.client.post("/api/install", json={"entrypoint": "missing.py"})
        assert response.status_code == 400
        assert "missing.py" in response.json()["detail"]

    def test_invalid_flags(self):
        """Should validate the flags bitmask."""
        response = self.client.post("/api/install", json={"flags": 9})
        assert response.status_code == 422

    def test_locked(self):
        """Should answer 409 while another installation runs."""
        lock = self.builder.ledger_path.with_name("installer.ini.lock")
        lock.parent.mkdir(parents=True, exist_ok=True)
        lock.write_text(f"{os.getpid()}\n")

        response = self.client.post("/api/install", json={})
        assert response.status_code == 409

    def test_install_and_uninstall_modules(self):
        """Should install then uninstall given modules."""
        response = self.client.post("/api/modules/install", json={"modules": ["tags"], "entrypoint": "admin"})
        assert response.status_code == 200
        assert response.json()["success"] is True
        assert self.builder.ledger().get_value("tags.installed", "admin") == "1"

        response = self.client.post("/api/modules/uninstall", json={"modules": ["tags"], "entrypoint": "admin"})
        assert response.status_code == 200
        assert response.json()["success"] is True
        assert self.builder.ledger().get_record("admin", "tags") is None

    def test_uninstall_conflict(self):
        """Should report a failure without an HTTP error."""
        assert self.client.post("/api/install", json={}).status_code == 200

        response = self.client.post("/api/modules/uninstall", json={"modules": ["tags"], "entrypoint": "index"})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is False
        assert any(m["severity"] == "error" for m in data["messages"])

    def test_empty_module_list(self):
        """Should require at least one module."""
        response = self.client.post("/api/modules/install", json={"modules": []})
        assert response.status_code == 422
