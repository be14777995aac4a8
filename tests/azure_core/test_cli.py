# === NAVMAP v1 ===
# {
#   "module": "tests.azure_core.test_cli",
#   "purpose": "Tests for the lhsm-az-core operator CLI.",
#   "sections": [
#     {"id": "fixtures", "name": "Fixtures", "anchor": "FIX", "kind": "fixtures"},
#     {"id": "tests", "name": "Test Cases", "anchor": "TST", "kind": "tests"}
#   ]
# }
# === /NAVMAP ===

"""Tests for the lhsm-az-core operator CLI."""

import json

import pytest
import yaml
from typer.testing import CliRunner

from LemurHSM.AzureCore import cli
from LemurHSM.AzureCore.testing import make_client

runner = CliRunner()


@pytest.fixture
def config_file(tmp_path, mount_root):
    path = tmp_path / "mover.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "az_storage_account": "acct",
                "az_storage_sas": "?sv=2021-08-06&sig=topsecret",
                "mount_root": str(mount_root),
                "num_threads": 2,
                "archives": [
                    {"id": 1, "container": "archive", "prefix": "export1"},
                    {"id": 2, "container": "cold"},
                ],
            }
        )
    )
    return path


@pytest.fixture(autouse=True)
def fake_store(store, monkeypatch):
    monkeypatch.setattr(cli, "build_client", lambda settings: make_client(store, settings.build_pacer()))
    return store


def test_archive_restore_remove(config_file, store, tmp_path):
    result = runner.invoke(cli.app, ["archive", "a/b/file.txt", "--config", str(config_file)])
    assert result.exit_code == 0, result.output
    assert "archived archive/export1/a/b/file.txt (14 bytes)" in result.output
    assert store.get("archive/export1/a/b/file.txt").data == b"hello archive\n"

    destination = tmp_path / "restored.txt"
    result = runner.invoke(
        cli.app, ["restore", "a/b/file.txt", str(destination), "--config", str(config_file)]
    )
    assert result.exit_code == 0, result.output
    assert destination.read_bytes() == b"hello archive\n"

    result = runner.invoke(cli.app, ["remove", "a/b/file.txt", "--config", str(config_file)])
    assert result.exit_code == 0, result.output
    assert store.get("archive/export1/a/b/file.txt") is None


def test_archive_id_selects_container(config_file, store):
    result = runner.invoke(
        cli.app, ["archive", "a/b/file.txt", "--config", str(config_file), "--archive-id", "2"]
    )
    assert result.exit_code == 0, result.output
    assert store.get("cold/a/b/file.txt") is not None


def test_failure_exits_with_one(config_file):
    result = runner.invoke(cli.app, ["remove", "never/archived", "--config", str(config_file)])
    assert result.exit_code == 1
    assert "error:" in result.output
    assert "topsecret" not in result.output


def test_unknown_archive_id(config_file):
    result = runner.invoke(
        cli.app, ["remove", "x", "--config", str(config_file), "--archive-id", "9"]
    )
    assert result.exit_code == 1


def test_missing_config(tmp_path):
    result = runner.invoke(cli.app, ["check-config", "--config", str(tmp_path / "nope.yaml")])
    assert result.exit_code == 1
    assert "not found" in result.output


def test_check_config_masks_sas(config_file):
    result = runner.invoke(cli.app, ["check-config", "--config", str(config_file)])
    assert result.exit_code == 0, result.output
    summary = json.loads(result.stdout)
    assert summary["sas_token"] == "***masked***"
    assert summary["parallelism"] == 2
    assert [archive["id"] for archive in summary["archives"]] == [1, 2]
    assert "topsecret" not in result.output


def test_config_from_environment(config_file, monkeypatch):
    monkeypatch.setenv("LHSM_AZ_CONFIG", str(config_file))
    result = runner.invoke(cli.app, ["check-config", "--archive-id", "2"])
    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)["archives"][0]["container"] == "cold"
