"""
Configuration Loader (``incentive_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into the frozen
``incentive_config.schema`` types.  Runtime callers use
``incentive_config.get_active_config()`` instead of this module.

Invariants enforced
-------------------
* Unknown expiration policies, negative SLA hours and unsorted or
  negative thresholds are rejected with ``ValueError``.
* Amounts are parsed to ``Decimal`` from their string form, never float.
* ``compute_checksum`` is deterministic for identical input.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from incentive_config.schema import (
    ApprovalSettings,
    ConcurrencySettings,
    DatabaseSettings,
    EligibilitySettings,
    IncentiveSettings,
    OutboxSettings,
)

EXPIRATION_POLICY_NAMES = frozenset({"none", "auto_reject", "escalate", "renotify"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, label: str) -> Decimal:
    if isinstance(value, float):
        value = repr(value)
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"{label}: not a decimal value: {value!r}") from None


def parse_approval(data: dict[str, Any]) -> ApprovalSettings:
    sla_hours = {int(level): int(hours) for level, hours in (data.get("sla_hours") or {}).items()}
    for level, hours in sla_hours.items():
        if level < 1 or hours < 0:
            raise ValueError(f"approval.sla_hours: invalid entry {level}: {hours}")

    thresholds: dict[str, tuple[Decimal, ...]] = {}
    for currency, values in (data.get("amount_thresholds") or {}).items():
        parsed = tuple(
            parse_decimal(v, f"approval.amount_thresholds.{currency}") for v in values
        )
        if any(v < 0 for v in parsed) or list(parsed) != sorted(parsed):
            raise ValueError(
                f"approval.amount_thresholds.{currency} must be ascending and non-negative"
            )
        thresholds[str(currency).upper()] = parsed

    policy = data.get("expiration_policy", "none")
    if policy not in EXPIRATION_POLICY_NAMES:
        raise ValueError(
            f"approval.expiration_policy: unknown policy {policy!r}; "
            f"expected one of {sorted(EXPIRATION_POLICY_NAMES)}"
        )

    return ApprovalSettings(
        sla_hours=sla_hours,
        default_sla_hours=int(data.get("default_sla_hours", 72)),
        amount_thresholds=thresholds,
        expiration_policy=policy,
    )


def parse_eligibility(data: dict[str, Any]) -> EligibilitySettings:
    return EligibilitySettings(
        eligible_statuses=tuple(data.get("eligible_statuses", ("active", "probation"))),
        default_min_tenure_days=int(data.get("default_min_tenure_days", 0)),
    )


def parse_settings(data: dict[str, Any]) -> IncentiveSettings:
    concurrency = data.get("concurrency") or {}
    outbox = data.get("outbox") or {}
    database = data.get("database") or {}
    return IncentiveSettings(
        config_id=data["config_id"],
        version=int(data["version"]),
        default_currency=str(data.get("default_currency", "INR")).upper(),
        approval=parse_approval(data.get("approval") or {}),
        eligibility=parse_eligibility(data.get("eligibility") or {}),
        concurrency=ConcurrencySettings(
            max_retries=int(concurrency.get("max_retries", 3)),
        ),
        outbox=OutboxSettings(
            max_delivery_attempts=int(outbox.get("max_delivery_attempts", 5)),
            drain_after_commit=bool(outbox.get("drain_after_commit", True)),
        ),
        database=DatabaseSettings(
            url=database.get("url", "sqlite:///:memory:"),
            echo=bool(database.get("echo", False)),
        ),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
