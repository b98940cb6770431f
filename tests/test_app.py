"""
Tests for app.py - command line entry points.
"""

import json
import sys

import pytest

from rostersync import __version__, app
from rostersync.affinity import StatusField

ENV_VARS = (
    "AFFINITY_V2_TOKEN", "AFFINITY_LIST_ID", "STATUS_FIELD_NAME", "MIN_STATUS_LABEL",
    "HARD_LOCK_LABELS", "REDACT_RESPONSE", "SYNC_WORKERS", "STAGE_ORDER", "LABEL_ALIASES",
)


class StubClient:
    def __init__(self, entities, options):
        self.entities = entities
        self.options = options
        self.writes = []

    def discover_status_field(self, name=None):
        return StatusField(id="field-1", name="Status", options=self.options)

    def fetch_entities(self, status_field_id=None):
        return list(self.entities)

    def update_status(self, entry_id, field_id, option_id):
        self.writes.append(entry_id)
        return {}


@pytest.fixture
def cli(monkeypatch, tmp_path):
    """Run main() with the given arguments from an empty working directory."""
    monkeypatch.chdir(tmp_path)
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)

    def run(*argv):
        monkeypatch.setattr(sys, "argv", ["rostersync", *argv])
        app.main()

    return run


@pytest.fixture
def roster_file(tmp_path, roster_csv):
    path = tmp_path / "roster.csv"
    path.write_text(roster_csv, encoding="utf-8")
    return path


class TestCli:
    """Test subcommands."""

    def test_version(self, cli, capsys):
        cli("--version")
        assert capsys.readouterr().out.strip() == __version__

    def test_derive(self, cli, capsys, roster_file):
        cli("derive", "--input", str(roster_file))

        out = capsys.readouterr().out
        assert "Bental Group\n  Organizations: Bental Group\n  People: Matt Lee" in out
        assert "Stage: Data Room Accessed / NDA Executed" in out

    def test_derive_missing_file(self, cli, tmp_path):
        with pytest.raises(SystemExit):
            cli("derive", "--input", str(tmp_path / "nope.csv"))

    def test_sync_needs_credentials(self, cli, roster_file):
        with pytest.raises(SystemExit, match="AFFINITY_V2_TOKEN"):
            cli("sync", "--input", str(roster_file), "--dry-run")

    def test_sync_dry_run_with_audit(self, cli, capsys, monkeypatch, tmp_path, roster_file,
                                     registry_entities, options):
        stub = StubClient(registry_entities, options)
        monkeypatch.setattr(app, "AffinityClient", lambda settings: stub)
        out_path = tmp_path / "out" / "results.json"
        db_path = tmp_path / "audit.db"

        cli("sync", "--input", str(roster_file), "--dry-run", "--redact",
            "--audit-db", str(db_path), "--output", str(out_path))

        payload = json.loads(out_path.read_text(encoding="utf-8"))
        assert payload["dry_run"] is True
        assert payload["total"] == 5
        assert set(payload["results"][0]) == {"matched", "decision", "reason", "updated", "would_update"}
        assert stub.writes == []

        out = capsys.readouterr().out
        assert "Recorded run 1" in out
        assert "Done (dry-run). total=5 updated=0" in out

        cli("runs", "--audit-db", str(db_path))
        assert "source=roster.csv total=5 matched=4" in capsys.readouterr().out

    def test_runs_empty(self, cli, capsys, tmp_path):
        cli("runs", "--audit-db", str(tmp_path / "none.db"))
        assert "No runs recorded" in capsys.readouterr().out
