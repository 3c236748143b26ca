"""Unit tests for the command line interface."""

import json

import pytest

from wcs_sublium_migrator.cli import build_parser, main

from .conftest import build_source_document


@pytest.fixture
def config_path(tmp_path):
    """Config file pointing at JSON source and target documents."""
    source_path = tmp_path / "store.json"
    source_path.write_text(json.dumps(build_source_document()))

    target_path = tmp_path / "sublium.json"
    target_path.write_text(json.dumps({"gateways": ["fkwcs_stripe", "fkwcppcp_paypal"]}))

    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "source": {"type": "json", "file_path": str(source_path)},
        "target": {"type": "json", "file_path": str(target_path)},
        "products_batch_size": 2,
        "subscriptions_batch_size": 2,
        "data_dir": str(tmp_path / "data"),
    }))
    return str(path)


def read_output(capsys):
    return json.loads(capsys.readouterr().out)


class TestParser:
    """Tests for argument parsing."""

    def test_worker_options(self):
        args = build_parser().parse_args(["--config", "c.json", "worker", "--max-units", "3"])

        assert args.config == "c.json"
        assert args.command == "worker"
        assert args.max_units == 3

    def test_no_command(self, capsys):
        assert main([]) == 1


class TestCommands:
    """Tests running commands against JSON catalogs."""

    def test_discover(self, config_path, capsys):
        assert main(["--config", config_path, "discover"]) == 0

        report = read_output(capsys)
        assert report["subscription_count"] == 4
        assert report["readiness"]["status"] == "feasible"

    def test_status_starts_idle(self, config_path, capsys):
        assert main(["--config", config_path, "status"]) == 0

        status = read_output(capsys)
        assert status["status"] == "idle"
        assert status["progress"] == {"products": 0.0, "subscriptions": 0.0}

    def test_state_survives_between_invocations(self, config_path, capsys):
        assert main(["--config", config_path, "start-products"]) == 0
        assert read_output(capsys)["success"]

        assert main(["--config", config_path, "worker"]) == 0
        assert read_output(capsys)["status"] == "idle"

        assert main(["--config", config_path, "status"]) == 0
        status = read_output(capsys)
        assert status["products_migration"]["processed_products"] == 4
        assert status["progress"]["products"] == 100.0

    def test_failed_command_exits_nonzero(self, config_path, capsys):
        assert main(["--config", config_path, "resume"]) == 1
        assert read_output(capsys)["message"] == "Migration is not paused"

    def test_run(self, config_path, capsys):
        assert main(["--config", config_path, "run"]) == 0

        out = capsys.readouterr().out
        assert "MIGRATION COMPLETE" in out
        assert "Status: completed" in out
        assert "Subscriptions Created: 3" in out
