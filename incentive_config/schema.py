"""
IncentiveSettings schema.

Typed, frozen form of an incentive configuration set.  YAML files are
parsed into these types by the loader; services receive plain values
taken from them, never the YAML itself.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

# ---------------------------------------------------------------------------
# Approval
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ApprovalSettings:
    """SLA, threshold and expiry behaviour of the approval workflow."""

    sla_hours: dict[int, int] = field(default_factory=dict)
    default_sla_hours: int = 72
    # Net amounts above each threshold need one more level.
    amount_thresholds: dict[str, tuple[Decimal, ...]] = field(default_factory=dict)
    expiration_policy: str = "none"

    def sla_for(self, level: int) -> int:
        return self.sla_hours.get(level, self.default_sla_hours)


# ---------------------------------------------------------------------------
# Eligibility
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EligibilitySettings:
    eligible_statuses: tuple[str, ...] = ("active", "probation")
    default_min_tenure_days: int = 0


# ---------------------------------------------------------------------------
# Runtime
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConcurrencySettings:
    max_retries: int = 3


@dataclass(frozen=True)
class OutboxSettings:
    max_delivery_attempts: int = 5
    drain_after_commit: bool = True


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite:///:memory:"
    echo: bool = False


@dataclass(frozen=True)
class IncentiveSettings:
    """One complete configuration set."""

    config_id: str
    version: int
    default_currency: str
    approval: ApprovalSettings
    eligibility: EligibilitySettings
    concurrency: ConcurrencySettings
    outbox: OutboxSettings
    database: DatabaseSettings
    checksum: str = ""
