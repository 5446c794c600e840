"""
Configuration Loader (``crew_config.loader``).

Responsibility
--------------
Reads a settlement YAML file and parses it into the kernel's frozen
``SettlementPolicy`` plus the database settings.  The single public entry
point for runtime config is ``crew_config.get_active_policy()``.

Invariants enforced
-------------------
* No silent defaults for required keys: a missing key raises ``KeyError``.
* Wrongly typed or out-of-range values raise ``ValueError`` naming the key.
* ``compute_checksum`` is a SHA-256 of the file bytes, for the config trace.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from crew_kernel.domain.policy import SettlementPolicy
from crew_kernel.domain.trust import TrustEventType, TrustRule, TrustSeverity

POLICY_KEYS: tuple[str, ...] = (
    "currency_decimal_places",
    "default_commission_percent",
    "minimum_rate",
    "check_in_grace_minutes",
    "worker_confirm_grace_hours",
    "rating_grace_hours",
    "appeal_window_days",
    "min_dispute_description_length",
    "max_resolution_length",
    "max_command_attempts",
    "late_arrival_minutes",
    "positive_rating_threshold",
    "trust_window_days",
    "trust_events",
)


@dataclass(frozen=True)
class DatabaseSettings:
    url: str


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def compute_checksum(path: Path) -> str:
    """SHA-256 hex digest of the file's bytes."""
    return hashlib.sha256(Path(path).read_bytes()).hexdigest()


def parse_int(data: dict[str, Any], key: str, minimum: int = 0) -> int:
    value = data[key]
    # YAML booleans are ints in Python; reject them explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer, got {value!r}")
    if value < minimum:
        raise ValueError(f"{key} must be >= {minimum}, got {value}")
    return value


def parse_decimal(data: dict[str, Any], key: str) -> Decimal:
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"{key} must be a number, got {value!r}")
    try:
        # str() first so a YAML float like 12.5 does not carry binary noise
        parsed = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{key} must be a number, got {value!r}") from exc
    if not parsed.is_finite():
        raise ValueError(f"{key} must be finite, got {value!r}")
    return parsed


def parse_policy(data: dict[str, Any]) -> SettlementPolicy:
    """
    Build a SettlementPolicy from the top-level settlement keys.

    Raises:
        KeyError: if a required key is missing.
        ValueError: if a value is malformed or out of range.
    """
    missing = [key for key in POLICY_KEYS if key not in data]
    if missing:
        raise KeyError(f"missing settlement config keys: {', '.join(missing)}")

    return SettlementPolicy(
        currency_decimal_places=parse_int(data, "currency_decimal_places"),
        default_commission_percent=parse_decimal(data, "default_commission_percent"),
        minimum_rate=parse_decimal(data, "minimum_rate"),
        check_in_grace=timedelta(minutes=parse_int(data, "check_in_grace_minutes")),
        worker_confirm_grace=timedelta(hours=parse_int(data, "worker_confirm_grace_hours")),
        rating_grace=timedelta(hours=parse_int(data, "rating_grace_hours")),
        appeal_window=timedelta(days=parse_int(data, "appeal_window_days")),
        min_dispute_description_length=parse_int(data, "min_dispute_description_length"),
        max_resolution_length=parse_int(data, "max_resolution_length", minimum=1),
        max_command_attempts=parse_int(data, "max_command_attempts", minimum=1),
        late_arrival_after=timedelta(minutes=parse_int(data, "late_arrival_minutes")),
        positive_rating_threshold=parse_int(data, "positive_rating_threshold", minimum=1),
        trust_window=timedelta(days=parse_int(data, "trust_window_days", minimum=1)),
        trust_rules=parse_trust_rules(data),
    )


def parse_trust_rules(data: dict[str, Any]) -> dict[TrustEventType, TrustRule]:
    """
    Parse the ``trust_events`` table: one ``{impact, severity}`` entry per
    event type.

    Raises:
        KeyError: if an event type or an entry field is missing.
        ValueError: on an unknown event type, a non-integer impact or an
            unknown severity.
    """
    section = data["trust_events"]
    if not isinstance(section, dict):
        raise ValueError(f"trust_events must be a mapping, got {section!r}")
    known = {t.value for t in TrustEventType}
    unknown = sorted(str(key) for key in section if key not in known)
    if unknown:
        raise ValueError(f"unknown trust event types: {', '.join(unknown)}")
    missing = [t.value for t in TrustEventType if t.value not in section]
    if missing:
        raise KeyError(f"missing trust_events entries: {', '.join(missing)}")

    rules: dict[TrustEventType, TrustRule] = {}
    for event_type in TrustEventType:
        entry = section[event_type.value]
        key = f"trust_events.{event_type.value}"
        if not isinstance(entry, dict):
            raise ValueError(f"{key} must be a mapping, got {entry!r}")
        impact = entry["impact"]
        if isinstance(impact, bool) or not isinstance(impact, int):
            raise ValueError(f"{key}.impact must be an integer, got {impact!r}")
        try:
            severity = TrustSeverity(entry["severity"])
        except ValueError as exc:
            raise ValueError(
                f"{key}.severity must be one of low, medium, high, got {entry['severity']!r}"
            ) from exc
        rules[event_type] = TrustRule(impact=impact, severity=severity)
    return rules


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    section = data["database"]
    if not isinstance(section, dict):
        raise ValueError(f"database must be a mapping, got {section!r}")
    url = section["url"]
    if not isinstance(url, str) or not url.strip():
        raise ValueError(f"database.url must be a non-empty string, got {url!r}")
    return DatabaseSettings(url=url)
