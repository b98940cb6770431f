"""
Roster -> registry reconciliation.

Responsibilities:
- Build the registry index once per run from a fresh registry read
- Evaluate every import row independently (derive, match, decide)
- Perform at most one write per authorized row, never retried

Non-Responsibilities:
- HTTP details (see affinity.py)
- Persisting run history (see audit.py)

Invariant:
- Output order matches input order, whether rows run sequentially or on a
  thread pool. A failed write is recorded on its row and does not stop the
  remaining rows.
"""

from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .breaker import CircuitBreaker
from .config import SyncConfig
from .csv_import import load_rows
from .errors import RegistryError
from .gate import Decision, WriteDecision, decide
from .index import RegistryIndex, build_index
from .logger import get_logger
from .matcher import match
from .models import Entity, RowResult
from .schema import ImportRow
from .status import derive_stage

logger = get_logger()

NO_MATCH_DECISION = "no_match"

Writer = Callable[[Any, Any], Any]


@dataclass
class SyncReport:
    results: List[RowResult] = field(default_factory=list)
    dry_run: bool = False
    status_field: Optional[str] = None

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def counts(self) -> Dict[str, int]:
        return dict(Counter(r.decision for r in self.results))

    @property
    def updated(self) -> int:
        return sum(1 for r in self.results if r.updated)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.error is not None)

    def to_dict(self, redact: bool = False) -> Dict[str, Any]:
        return {
            "ok": True,
            "dry_run": self.dry_run,
            "total": self.total,
            "counts": self.counts,
            "results": [r.to_dict(redact=redact) for r in self.results],
        }


def evaluate_row(
    row: ImportRow,
    index: RegistryIndex,
    options: Dict[str, Any],
    config: SyncConfig,
) -> Tuple[RowResult, Optional[Entity], Optional[WriteDecision]]:
    """Derive, match and decide one row. Never touches the registry."""
    derived = derive_stage(row, config)
    result = match(
        row.org_candidates(config.classify_bias),
        row.person_candidates(config.classify_bias),
        index,
        config.nicknames,
    )
    if not result.matched:
        return RowResult(
            display_name=row.display_name(),
            derived_label=derived,
            matched=False,
            decision=NO_MATCH_DECISION,
            reason="No matching registry entry",
            match_type=result.match_type,
            score=result.score,
        ), None, None

    entity = result.entity
    decision = decide(
        entity.current_label,
        derived,
        config.vocabulary,
        config.min_label,
        config.hard_lock_labels,
        options,
        config.label_aliases,
    )
    return RowResult(
        display_name=row.display_name(),
        derived_label=derived,
        matched=True,
        decision=decision.kind.value,
        reason=decision.reason,
        match_type=result.match_type,
        score=result.score,
        entry_id=entity.id,
        current_label=entity.current_label,
        option_id=decision.option_id,
        known_labels=list(decision.known_labels),
    ), entity, decision


def _write(result: RowResult, entity: Entity, decision: WriteDecision, writer: Writer, breaker: CircuitBreaker):
    try:
        breaker.call(writer, entity.id, decision.option_id)
    except Exception as e:
        error = e if isinstance(e, RegistryError) else RegistryError(str(e))
        result.error = error.to_dict()
        result.reason = f"Write failed: {error}"
        logger.record_write(False)
        logger.warning(
            "Status write failed",
            entry_id=entity.id, option_id=decision.option_id, error=str(error), transient=error.transient,
        )
        return
    result.updated = True
    logger.record_write(True)
    logger.info("Status updated", entry_id=entity.id, label=decision.option_label)


def reconcile(
    rows: Sequence[ImportRow],
    entities: Sequence[Entity],
    options: Dict[str, Any],
    config: SyncConfig,
    writer: Optional[Writer] = None,
    dry_run: bool = False,
) -> SyncReport:
    """
    Reconcile import rows against registry entities.

    Args:
        rows: Parsed import rows
        entities: Registry entities from a fresh read
        options: Status option label -> option id
        config: Sync configuration
        writer: Callable(entry_id, option_id) performing one registry write
        dry_run: Report would-be writes without calling the writer

    Returns:
        SyncReport with one RowResult per input row, in input order
    """
    index = build_index(entities, config.nicknames, config.classify_bias)
    logger.info("Built registry index", entities=len(index), rows=len(rows), workers=config.workers)

    def evaluate(row: ImportRow):
        return evaluate_row(row, index, options, config)

    if config.workers > 1 and len(rows) > 1:
        with ThreadPoolExecutor(max_workers=config.workers) as pool:
            evaluated = list(pool.map(evaluate, rows))
    else:
        evaluated = [evaluate(row) for row in rows]

    breaker = CircuitBreaker(
        failure_threshold=config.registry.breaker_threshold,
        expected_exception=Exception,
    )
    results: List[RowResult] = []
    for result, entity, decision in evaluated:
        if decision is not None and decision.kind is Decision.AUTHORIZED:
            if dry_run or writer is None:
                result.would_update = True
            else:
                _write(result, entity, decision, writer, breaker)
        logger.record_row(result.decision, result.match_type if result.matched else None)
        logger.debug(
            "Row processed",
            name=result.display_name, decision=result.decision,
            match_type=result.match_type, derived=result.derived_label,
        )
        results.append(result)

    return SyncReport(results=results, dry_run=dry_run)


def observed_options(entities: Sequence[Entity]) -> Dict[str, Any]:
    """Option label -> id as seen on the entries' current status values."""
    options: Dict[str, Any] = {}
    for entity in entities:
        if entity.current_label and entity.current_option_id is not None:
            options.setdefault(entity.current_label, entity.current_option_id)
    return options


def run_sync(csv_text: str, client, config: SyncConfig, dry_run: bool = False) -> SyncReport:
    """
    Full sync: parse the roster, read the registry, reconcile, write.

    Raises:
        ImportFileError: If the roster cannot be used
        ConfigError: If the status field cannot be discovered
        RegistryError: If the registry cannot be read
    """
    logger.reset_metrics()
    rows = load_rows(csv_text, config.max_csv_bytes)
    status_field = client.discover_status_field(config.registry.status_field_name)
    entities = client.fetch_entities(status_field.id)

    options = dict(status_field.options)
    if not options:
        options = observed_options(entities)
        logger.warning(
            "Status field lists no options; using values seen on entries",
            field=status_field.name, options=len(options),
        )

    def writer(entry_id, option_id):
        return client.update_status(entry_id, status_field.id, option_id)

    report = reconcile(rows, entities, options, config, writer=writer, dry_run=dry_run)
    report.status_field = status_field.name
    logger.log_metrics_summary()
    return report
