"""
Tests for audit.py - SQLite history of sync runs.
"""

from rostersync.audit import SyncRun, get_outcomes, get_session, init_database, list_runs, record_report
from rostersync.csv_import import load_rows
from rostersync.sync import NO_MATCH_DECISION, reconcile


def make_report(roster_csv, registry_entities, options, config, dry_run=True):
    report = reconcile(load_rows(roster_csv, 10_000), registry_entities, options, config, dry_run=dry_run)
    report.status_field = "Status"
    return report


class TestDatabase:
    """Test database setup."""

    def test_init_creates_file(self, tmp_path):
        db_path = tmp_path / "nested" / "audit.db"
        init_database(db_path)

        assert db_path.exists()
        session = get_session(db_path)
        try:
            assert session.query(SyncRun).count() == 0
        finally:
            session.close()


class TestRecordReport:
    """Test storing and reading runs."""

    def test_round_trip(self, tmp_path, roster_csv, registry_entities, options, config):
        db_path = tmp_path / "audit.db"
        report = make_report(roster_csv, registry_entities, options, config)

        run_id = record_report(db_path, report, source="roster.csv")

        runs = list_runs(db_path)
        assert [r.id for r in runs] == [run_id]
        run = runs[0]
        assert run.source == "roster.csv"
        assert run.status_field == "Status"
        assert run.dry_run is True
        assert run.total == 5
        assert run.matched == 4
        assert run.updated == 0
        assert run.counts["authorized"] == 2
        assert run.counts[NO_MATCH_DECISION] == 1

    def test_outcomes_keep_input_order(self, tmp_path, roster_csv, registry_entities, options, config):
        db_path = tmp_path / "audit.db"
        run_id = record_report(db_path, make_report(roster_csv, registry_entities, options, config))

        outcomes = get_outcomes(db_path, run_id)

        assert [o.position for o in outcomes] == [0, 1, 2, 3, 4]
        assert outcomes[0].display_name == "Bental Group"
        assert outcomes[0].entry_id == "101"
        assert outcomes[0].would_update is True
        assert outcomes[4].matched is False
        assert outcomes[4].entry_id is None

    def test_errors_stored_as_json(self, tmp_path, roster_csv, registry_entities, options, config):
        from rostersync.errors import RegistryError

        def writer(entry_id, option_id):
            raise RegistryError("Affinity request failed (500)", status=500)

        report = reconcile(load_rows(roster_csv, 10_000), registry_entities, options, config, writer=writer)
        db_path = tmp_path / "audit.db"
        run_id = record_report(db_path, report)

        assert list_runs(db_path)[0].failed == 2
        assert '"status": 500' in get_outcomes(db_path, run_id)[0].error_json

    def test_newest_first_with_limit(self, tmp_path, roster_csv, registry_entities, options, config):
        db_path = tmp_path / "audit.db"
        first = record_report(db_path, make_report(roster_csv, registry_entities, options, config))
        second = record_report(db_path, make_report(roster_csv, registry_entities, options, config))

        assert [r.id for r in list_runs(db_path)] == [second, first]
        assert [r.id for r in list_runs(db_path, limit=1)] == [second]

    def test_missing_file(self, tmp_path):
        db_path = tmp_path / "missing.db"
        assert list_runs(db_path) == []
        assert not db_path.exists()
