"""
Sync configuration.

All tunables are loaded once into an immutable SyncConfig that is passed
explicitly to the deriver, the gate and the orchestrator. Nothing reads the
environment after load_config() returns.

Malformed lookup tables (aliases, overrides, nicknames) fail closed: they are
logged and treated as empty, so nothing can resolve through them.
"""

import json
import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, List, Mapping, Optional

from .errors import ConfigError
from .logger import get_logger
from .models import EntityRole
from .normalize import DEFAULT_NICKNAME_TABLE, NicknameTable, normalize_text
from .stages import DATA_ROOM_ACCESSED, DEFAULT_STAGE_ORDER, DERIVED_STAGES, StageVocabulary, label_key

logger = get_logger()

DEFAULT_BASE_URL = "https://api.affinity.co/v2"
DEFAULT_MIN_LABEL = DATA_ROOM_ACCESSED
DEFAULT_HARD_LOCKS = ("passed",)
DEFAULT_MAX_CSV_BYTES = 2_000_000
DEFAULT_TIMEOUT = 60.0
DEFAULT_BREAKER_THRESHOLD = 0  # off; set WRITE_BREAKER_THRESHOLD to stop writes after N failures in a row


def phrase_key(text: Optional[str]) -> str:
    """Lowercase, trimmed, whitespace-collapsed form used for exact-phrase tables."""
    return " ".join(str(text or "").lower().split())


@dataclass(frozen=True)
class RegistrySettings:
    token: Optional[str] = None
    list_id: Optional[str] = None
    status_field_name: str = "Status"
    base_url: str = DEFAULT_BASE_URL
    timeout: float = DEFAULT_TIMEOUT
    breaker_threshold: int = DEFAULT_BREAKER_THRESHOLD

    def require(self) -> None:
        """Raise ConfigError unless the registry can be reached."""
        if not self.token:
            raise ConfigError("Missing AFFINITY_V2_TOKEN")
        if not self.list_id:
            raise ConfigError("Missing AFFINITY_LIST_ID")


@dataclass(frozen=True)
class SyncConfig:
    vocabulary: StageVocabulary = field(default_factory=StageVocabulary)
    min_label: str = DEFAULT_MIN_LABEL
    hard_lock_labels: FrozenSet[str] = frozenset(DEFAULT_HARD_LOCKS)
    label_aliases: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    subscription_overrides: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    nicknames: NicknameTable = DEFAULT_NICKNAME_TABLE
    classify_bias: EntityRole = EntityRole.PERSON
    max_csv_bytes: int = DEFAULT_MAX_CSV_BYTES
    redact: bool = False
    workers: int = 1
    registry: RegistrySettings = field(default_factory=RegistrySettings)

    def __post_init__(self):
        canonical = self.vocabulary.canonical(self.min_label)
        if canonical is None:
            raise ConfigError(
                f"Minimum status label '{self.min_label}' is not in the stage order"
            )
        object.__setattr__(self, "min_label", canonical)

        missing = [s for s in DERIVED_STAGES if s not in self.vocabulary]
        if missing:
            raise ConfigError(f"Stage order is missing derived stages: {', '.join(missing)}")

        locks = {label_key(label) for label in self.hard_lock_labels if label_key(label)}
        locks.update(DEFAULT_HARD_LOCKS)
        object.__setattr__(self, "hard_lock_labels", frozenset(locks))
        object.__setattr__(
            self, "label_aliases",
            MappingProxyType({phrase_key(k): v for k, v in dict(self.label_aliases).items() if phrase_key(k)}),
        )
        object.__setattr__(
            self, "subscription_overrides",
            MappingProxyType({phrase_key(k): v for k, v in dict(self.subscription_overrides).items() if phrase_key(k)}),
        )
        if self.workers < 1:
            object.__setattr__(self, "workers", 1)


def _str_table(environ: Mapping[str, str], name: str) -> Dict[str, str]:
    raw = environ.get(name)
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning(f"Ignoring malformed {name}", error=str(e))
        return {}
    if not isinstance(data, dict):
        logger.warning(f"Ignoring {name}: expected a JSON object", got=type(data).__name__)
        return {}
    table = {}
    for k, v in data.items():
        if isinstance(v, str) and v.strip():
            table[str(k)] = v.strip()
        else:
            logger.warning(f"Ignoring {name} entry with non-string target", key=k)
    return table


def _nickname_table(environ: Mapping[str, str]) -> NicknameTable:
    raw = environ.get("NICKNAMES")
    if not raw:
        return DEFAULT_NICKNAME_TABLE
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("Ignoring malformed NICKNAMES", error=str(e))
        return DEFAULT_NICKNAME_TABLE
    if not isinstance(data, dict):
        logger.warning("Ignoring NICKNAMES: expected a JSON object", got=type(data).__name__)
        return DEFAULT_NICKNAME_TABLE
    extra: Dict[str, List[str]] = {}
    for canonical, variants in data.items():
        if isinstance(variants, str):
            variants = [v for v in variants.split(",")]
        if not isinstance(variants, list):
            logger.warning("Ignoring NICKNAMES entry", key=canonical)
            continue
        extra[str(canonical)] = [str(v) for v in variants if normalize_text(str(v))]
    return DEFAULT_NICKNAME_TABLE.merged(extra)


def _stage_order(environ: Mapping[str, str]) -> StageVocabulary:
    raw = environ.get("STAGE_ORDER")
    if not raw:
        return StageVocabulary(DEFAULT_STAGE_ORDER)
    raw = raw.strip()
    try:
        labels: Any = json.loads(raw) if raw.startswith("[") else raw.split("|")
    except json.JSONDecodeError as e:
        raise ConfigError(f"STAGE_ORDER is not valid JSON: {e}")
    if not isinstance(labels, list) or not all(isinstance(x, str) for x in labels):
        raise ConfigError("STAGE_ORDER must be a list of labels")
    try:
        return StageVocabulary(labels)
    except ValueError as e:
        raise ConfigError(str(e))


def _int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or str(raw).strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


def _float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name)
    if raw is None or str(raw).strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")


def load_config(environ: Optional[Mapping[str, str]] = None) -> SyncConfig:
    """
    Build a SyncConfig from environment variables.

    Args:
        environ: Mapping to read from (default: os.environ)

    Returns:
        Validated SyncConfig

    Raises:
        ConfigError: On an invalid stage order, minimum label or numeric setting
    """
    env = os.environ if environ is None else environ

    bias_raw = normalize_text(env.get("CLASSIFY_BIAS", "person"))
    if bias_raw in ("organization", "organisation", "org", "company"):
        bias = EntityRole.ORGANIZATION
    else:
        bias = EntityRole.PERSON

    hard_locks = [s for s in (env.get("HARD_LOCK_LABELS") or "").split(",") if s.strip()]

    registry = RegistrySettings(
        token=env.get("AFFINITY_V2_TOKEN") or None,
        list_id=env.get("AFFINITY_LIST_ID") or None,
        status_field_name=env.get("STATUS_FIELD_NAME") or "Status",
        base_url=(env.get("AFFINITY_BASE_URL") or DEFAULT_BASE_URL).rstrip("/"),
        timeout=_float(env, "AFFINITY_TIMEOUT", DEFAULT_TIMEOUT),
        breaker_threshold=_int(env, "WRITE_BREAKER_THRESHOLD", DEFAULT_BREAKER_THRESHOLD),
    )

    return SyncConfig(
        vocabulary=_stage_order(env),
        min_label=env.get("MIN_STATUS_LABEL") or DEFAULT_MIN_LABEL,
        hard_lock_labels=frozenset(DEFAULT_HARD_LOCKS) | frozenset(hard_locks),
        label_aliases=_str_table(env, "LABEL_ALIASES"),
        subscription_overrides=_str_table(env, "SUBSCRIPTION_OVERRIDES"),
        nicknames=_nickname_table(env),
        classify_bias=bias,
        max_csv_bytes=_int(env, "MAX_CSV_BYTES", DEFAULT_MAX_CSV_BYTES),
        redact=env.get("REDACT_RESPONSE") == "1",
        workers=_int(env, "SYNC_WORKERS", 1),
        registry=registry,
    )
