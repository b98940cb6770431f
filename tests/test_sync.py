"""
Tests for sync.py - reconciliation and the full sync flow.
"""

import pytest

from rostersync.affinity import StatusField
from rostersync.config import RegistrySettings, SyncConfig
from rostersync.csv_import import load_rows
from rostersync.errors import ImportFileError, RegistryError
from rostersync.models import Entity
from rostersync import sync
from rostersync.sync import NO_MATCH_DECISION, reconcile, run_sync


class FakeClient:
    """Stands in for AffinityClient."""

    def __init__(self, entities, options, fail_writes=False):
        self.entities = entities
        self.field = StatusField(id="field-1", name="Status", options=options)
        self.fail_writes = fail_writes
        self.writes = []

    def discover_status_field(self, name=None):
        return self.field

    def fetch_entities(self, status_field_id=None):
        return list(self.entities)

    def update_status(self, entry_id, field_id, option_id):
        self.writes.append((entry_id, field_id, option_id))
        if self.fail_writes:
            raise RegistryError("Affinity request failed (500)", status=500, payload={"error": "boom"})
        return {}


def decisions(report):
    return [r.decision for r in report.results]


class TestReconcile:
    """Test row evaluation and writes."""

    def test_outcomes_in_input_order(self, roster_csv, registry_entities, options, config):
        rows = load_rows(roster_csv, config.max_csv_bytes)
        writes = []

        report = reconcile(rows, registry_entities, options, config,
                           writer=lambda entry_id, option_id: writes.append((entry_id, option_id)))

        assert decisions(report) == [
            "authorized",      # Bental: invited -> accessed
            "authorized",      # Acme: empty -> signed
            "hard_locked",     # Northwind: Passed
            "below_threshold",  # Smith: only an early hint
            NO_MATCH_DECISION,
        ]
        assert writes == [(101, options["Data Room Accessed / NDA Executed"]), (102, options["Sub Docs Signed"])]
        assert [r.updated for r in report.results] == [True, True, False, False, False]
        assert report.counts["authorized"] == 2
        assert report.total == 5

    def test_dry_run_never_writes(self, roster_csv, registry_entities, options, config):
        rows = load_rows(roster_csv, config.max_csv_bytes)

        def writer(entry_id, option_id):
            raise AssertionError("dry run wrote")

        report = reconcile(rows, registry_entities, options, config, writer=writer, dry_run=True)

        assert [r.would_update for r in report.results] == [True, True, False, False, False]
        assert not any(r.updated for r in report.results)

    def test_failed_write_is_recorded_per_row(self, roster_csv, registry_entities, options, config):
        rows = load_rows(roster_csv, config.max_csv_bytes)

        def writer(entry_id, option_id):
            if entry_id == 101:
                raise RegistryError("Affinity request failed (503)", status=503, payload={"message": "down"})

        report = reconcile(rows, registry_entities, options, config, writer=writer)
        bental, acme = report.results[0], report.results[1]

        assert not bental.updated
        assert bental.error["status"] == 503
        assert bental.error["transient"] is True
        assert acme.updated

    def test_breaker_stops_writes(self, registry_entities, options):
        config = SyncConfig(registry=RegistrySettings(breaker_threshold=1))
        csv_text = "Organization,Subscription Status\nAcme,Signed\nBental Group,Signed\n"
        rows = load_rows(csv_text, config.max_csv_bytes)
        calls = []

        def writer(entry_id, option_id):
            calls.append(entry_id)
            raise RegistryError("Affinity request failed (500)", status=500)

        report = reconcile(rows, registry_entities, options, config, writer=writer)

        assert calls == [102]
        assert "Circuit breaker is OPEN" in report.results[1].error["message"]

    def test_failed_writes_do_not_block_other_rows(self, options, config):
        names = ["Acorn", "Birch", "Cedar", "Dogwood", "Elm", "Fir", "Ginkgo"]
        entities = [Entity(id=i, name=n, type_tag="company") for i, n in enumerate(names, start=1)]
        csv_text = "Organization,Subscription Status\n" + "".join(f"{n},Signed\n" for n in names)
        calls = []

        def writer(entry_id, option_id):
            calls.append(entry_id)
            if entry_id <= 5:
                raise RegistryError("Affinity request failed (400)", status=400)

        report = reconcile(load_rows(csv_text, 10_000), entities, options, config, writer=writer)

        assert calls == [1, 2, 3, 4, 5, 6, 7]
        assert [r.updated for r in report.results] == [False] * 5 + [True] * 2

    def test_thread_pool_keeps_order(self, roster_csv, registry_entities, options):
        sequential = reconcile(load_rows(roster_csv, 10_000), registry_entities, options, SyncConfig())
        pooled = reconcile(load_rows(roster_csv, 10_000), registry_entities, options, SyncConfig(workers=4))

        assert [r.to_dict() for r in pooled.results] == [r.to_dict() for r in sequential.results]

    def test_unknown_option(self, registry_entities, config):
        rows = load_rows("Organization,Subscription Status\nAcme,Signed\n", 1000)
        report = reconcile(rows, registry_entities, {"Target Identified": 1}, config)

        result = report.results[0]
        assert result.decision == "unknown_label"
        assert result.known_labels == ["Target Identified"]


class TestReport:
    """Test report serialization."""

    def test_redacted(self, roster_csv, registry_entities, options, config):
        report = reconcile(load_rows(roster_csv, 10_000), registry_entities, options, config, dry_run=True)
        payload = report.to_dict(redact=True)

        assert payload["total"] == 5
        assert set(payload["results"][0]) == {"matched", "decision", "reason", "updated", "would_update"}

    def test_full(self, roster_csv, registry_entities, options, config):
        report = reconcile(load_rows(roster_csv, 10_000), registry_entities, options, config, dry_run=True)
        first = report.to_dict()["results"][0]

        assert first["display_name"] == "Bental Group"
        assert first["entry_id"] == 101
        assert first["match_type"] == "organization"
        assert first["score"] == 1.0


class TestRunSync:
    """Test the end-to-end flow with a fake client."""

    def test_writes_through_client(self, roster_csv, registry_entities, options, config):
        client = FakeClient(registry_entities, options)

        report = run_sync(roster_csv, client, config)

        assert client.writes == [
            (101, "field-1", options["Data Room Accessed / NDA Executed"]),
            (102, "field-1", options["Sub Docs Signed"]),
        ]
        assert report.updated == 2
        assert report.status_field == "Status"
        assert sync.logger.get_metrics()["writes_succeeded"] == 2

    def test_dry_run(self, roster_csv, registry_entities, options, config):
        client = FakeClient(registry_entities, options)
        report = run_sync(roster_csv, client, config, dry_run=True)

        assert client.writes == []
        assert report.dry_run

    def test_write_failures_do_not_abort(self, roster_csv, registry_entities, options, config):
        client = FakeClient(registry_entities, options, fail_writes=True)
        report = run_sync(roster_csv, client, config)

        assert report.total == 5
        assert report.failed == 2

    def test_options_from_entries_when_field_lists_none(self, registry_entities, config):
        entities = registry_entities + [
            Entity(id=200, name="Other Co", type_tag="company",
                   current_label="Sub Docs Signed", current_option_id="opt-signed"),
        ]
        client = FakeClient(entities, options={})

        run_sync("Organization,Subscription Status\nAcme,Signed\n", client, config)

        assert client.writes == [(102, "field-1", "opt-signed")]

    def test_bad_csv_is_fatal(self, registry_entities, options, config):
        with pytest.raises(ImportFileError):
            run_sync("", FakeClient(registry_entities, options), config)
