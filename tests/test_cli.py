"""End-to-end tests for the provider-migrator command line."""

import re

import pytest
import yaml
from click.testing import CliRunner

from provider_migration.cli.main import cli

RECORDS = {
    "records": [
        {"id": "conn-1", "category": "openai", "raw_config": {"api_key": "sk-1"}},
        {"id": "conn-2", "category": "openai", "raw_config": {"api_key": "sk-2"}},
        {"id": "conn-3", "category": "anthropic", "raw_config": {"api_key": "sk-3"}},
        {"id": "conn-4", "category": "cohere", "raw_config": {"api_key": "co-4"}},
    ]
}


@pytest.fixture
def workspace(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        yaml.safe_dump(
            {
                "state": {"db_path": str(tmp_path / "state.db")},
                "paths": {"report_dir": str(tmp_path / "reports")},
            }
        )
    )
    records_path = tmp_path / "records.yaml"
    records_path.write_text(yaml.safe_dump(RECORDS))
    return tmp_path


@pytest.fixture
def invoke(workspace):
    runner = CliRunner()

    def _invoke(*args, **kwargs):
        return runner.invoke(
            cli,
            [
                "--config",
                str(workspace / "config.yaml"),
                "--log-file",
                str(workspace / "cli.log"),
                *args,
            ],
            **kwargs,
        )

    return _invoke


def _create_plan(invoke) -> str:
    result = invoke("plan", "create")
    assert result.exit_code == 0, result.output
    match = re.search(r"Plan created: (\S+)", result.output)
    assert match is not None
    return match.group(1)


class TestRecordsCommands:
    def test_import_and_list(self, invoke, workspace):
        result = invoke("records", "import", str(workspace / "records.yaml"))

        assert result.exit_code == 0, result.output
        assert "Imported 4 legacy records" in result.output

        result = invoke("records", "list", "--pending")
        assert result.exit_code == 0, result.output
        assert "conn-4" in result.output

    def test_import_rejects_malformed_file(self, invoke, workspace):
        path = workspace / "bad.yaml"
        path.write_text("records: nope\n")

        result = invoke("records", "import", str(path))

        assert result.exit_code == 2
        assert "Expected a list of records" in result.output

    def test_check(self, invoke, workspace):
        invoke("records", "import", str(workspace / "records.yaml"))

        result = invoke("records", "check", "conn-1")
        assert result.exit_code == 0, result.output
        assert "conn-1 is compatible" in result.output

        result = invoke("records", "check", "conn-4")
        assert result.exit_code == 1
        assert "Unsupported provider type: cohere" in result.output

        result = invoke("records", "check", "--all")
        assert result.exit_code == 1
        assert "1 of 4 pending records are not compatible" in result.output

    def test_check_needs_an_argument(self, invoke):
        result = invoke("records", "check")

        assert result.exit_code == 2
        assert "Give a RECORD_ID or --all" in result.output


class TestPlanCommands:
    def test_create_and_list(self, invoke, workspace):
        invoke("records", "import", str(workspace / "records.yaml"))

        plan_id = _create_plan(invoke)

        result = invoke("plan", "show", plan_id)
        assert result.exit_code == 0, result.output
        assert "openai" in result.output

        result = invoke("plan", "list")
        assert result.exit_code == 0, result.output
        assert "Migration Plans" in result.output

    def test_show_unknown_plan(self, invoke):
        result = invoke("plan", "show", "missing")

        assert result.exit_code == 6
        assert "missing" in result.output


class TestMigrateCommands:
    @pytest.fixture
    def plan_id(self, invoke, workspace):
        invoke("records", "import", str(workspace / "records.yaml"))
        return _create_plan(invoke)

    def test_dry_run(self, invoke, plan_id):
        result = invoke("migrate", "run", plan_id, "--dry-run", "--no-progress", "--no-report")

        assert result.exit_code == 0, result.output
        assert "Migration succeeded (dry run)" in result.output
        assert "conn-4" in result.output

        result = invoke("records", "list", "--pending")
        assert "conn-1" in result.output

    def test_run_requires_confirmation(self, invoke, plan_id):
        result = invoke("migrate", "run", plan_id, "--no-progress", "--no-report", input="n\n")

        assert result.exit_code == 1
        assert "has not been executed" in invoke("migrate", "status", plan_id).output

    def test_run_status_and_rollback(self, invoke, plan_id, workspace):
        result = invoke("migrate", "run", plan_id, "--yes", "--no-progress")

        assert result.exit_code == 0, result.output
        assert "Migration succeeded" in result.output
        reports = sorted(p.name for p in (workspace / "reports").iterdir())
        assert reports == [
            f"migration_{plan_id}_attempt1.json",
            f"migration_{plan_id}_attempt1.md",
        ]

        result = invoke("migrate", "status", plan_id)
        assert result.exit_code == 0, result.output
        assert "can be rolled back" in result.output

        result = invoke("migrate", "rollback", plan_id, "--yes")
        assert result.exit_code == 0, result.output
        assert "Restored 4 records and removed 6 resources" in result.output

        result = invoke("migrate", "rollback", plan_id, "--yes")
        assert result.exit_code == 6
        assert "already restored" in result.output

    def test_rollback_prompt_declined(self, invoke, plan_id):
        invoke("migrate", "run", plan_id, "--yes", "--no-progress", "--no-report")

        result = invoke("migrate", "rollback", plan_id, input="n\n")

        assert result.exit_code == 0
        assert "Operation cancelled." in result.output
        assert "can be rolled back" in invoke("migrate", "status", plan_id).output

    def test_results_and_report(self, invoke, plan_id, workspace):
        invoke("migrate", "run", plan_id, "--dry-run", "--no-progress", "--no-report")

        result = invoke("migrate", "results", plan_id)
        assert result.exit_code == 0, result.output
        assert "dry run" in result.output

        out_dir = workspace / "out"
        result = invoke("migrate", "report", plan_id, "--output-dir", str(out_dir))
        assert result.exit_code == 0, result.output
        assert (out_dir / f"migration_{plan_id}_attempt1.md").exists()


class TestConfigurationErrors:
    def test_invalid_config_exits_with_2(self, tmp_path):
        config_path = tmp_path / "config.yaml"
        config_path.write_text(yaml.safe_dump({"registry": {"mode": "http"}}))

        result = CliRunner().invoke(
            cli,
            ["--config", str(config_path), "--log-file", str(tmp_path / "cli.log"), "plan", "list"],
        )

        assert result.exit_code == 2
        assert "Configuration Error" in result.output
