"""Tests for the operator CLI commands."""

import json

import pytest
from typer.testing import CliRunner

from audit_system.cli import main as cli_main
from audit_system.services import AuditServices

runner = CliRunner()


@pytest.fixture
def cli_services(services: AuditServices, monkeypatch: pytest.MonkeyPatch) -> AuditServices:
    monkeypatch.setattr(cli_main, "_services", lambda: services)
    return services


@pytest.fixture
def products_file(tmp_path):
    path = tmp_path / "products.json"
    path.write_text(
        json.dumps([{"product_id": "p-1", "slug": "acme-x1000", "brand": "Acme", "model_name": "X1000"}]),
        encoding="utf-8",
    )
    return path


class TestCommands:
    def test_version(self) -> None:
        result = runner.invoke(cli_main.app, ["version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.stdout

    def test_status_without_product(self) -> None:
        result = runner.invoke(cli_main.app, ["status"])
        assert result.exit_code == 0
        assert "Gemini API" in result.stdout

    def test_import_and_run_stage(self, cli_services: AuditServices, products_file) -> None:
        result = runner.invoke(cli_main.app, ["import-products", str(products_file)])
        assert result.exit_code == 0
        assert "Imported 1 products" in result.stdout

        result = runner.invoke(cli_main.app, ["run-stage", "p-1", "1"])
        assert result.exit_code == 0
        assert "stage_1 (done)" in result.stdout

        result = runner.invoke(cli_main.app, ["status", "p-1"])
        assert result.exit_code == 0
        assert "stage_4" in result.stdout

    def test_run_stage_prereq_failure(self, cli_services: AuditServices, products_file) -> None:
        runner.invoke(cli_main.app, ["import-products", str(products_file)])

        result = runner.invoke(cli_main.app, ["run-stage", "p-1", "3"])

        assert result.exit_code == 1
        assert "PREREQ_FAILED" in result.stdout

    def test_unknown_stage(self, cli_services: AuditServices) -> None:
        result = runner.invoke(cli_main.app, ["run-stage", "p-1", "9"])
        assert result.exit_code == 2

    def test_enqueue_and_work(self, cli_services: AuditServices, products_file) -> None:
        runner.invoke(cli_main.app, ["import-products", str(products_file)])

        result = runner.invoke(cli_main.app, ["enqueue", "p-1"])
        assert result.exit_code == 0

        result = runner.invoke(cli_main.app, ["work", "--steps", "5"])
        assert result.exit_code == 0
        assert "complete" in result.stdout
        assert "No queued work" in result.stdout

    def test_enqueue_unknown_product(self, cli_services: AuditServices) -> None:
        result = runner.invoke(cli_main.app, ["enqueue", "missing"])
        assert result.exit_code == 1
        assert "NOT_FOUND" in result.stdout

    def test_integrity_and_sweep(self, cli_services: AuditServices, products_file) -> None:
        runner.invoke(cli_main.app, ["import-products", str(products_file)])

        result = runner.invoke(cli_main.app, ["integrity", "acme-x1000"])
        assert result.exit_code == 0
        assert "no_audit" in result.stdout

        result = runner.invoke(cli_main.app, ["sweep"])
        assert result.exit_code == 0
        assert "0 processed" in result.stdout
