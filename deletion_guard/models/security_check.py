"""Security check result model."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..utils.timeutil import parse_datetime, to_iso


@dataclass
class SecurityCheckResult:
    """Risk flags computed once when a deletion is scheduled.

    A flag whose collaborator read failed is set to True and the failure is
    listed in ``check_errors``; an unknown state is treated as risky.

    Attributes:
        has_active_dependents: Target still has registrations
        has_recent_payments: Payments were taken within the recent window
        is_live: Target's start/end window covers the check time
        requires_approval: Any high-risk flag is set
        dependent_count: Registrations observed (None if the read failed)
        recent_payment_count: Recent payments observed (None if the read failed)
        checked_at: When the checks ran
        warnings: Human-readable warnings for operators
        check_errors: Collaborator read failures that forced a flag to True
    """

    has_active_dependents: bool = False
    has_recent_payments: bool = False
    is_live: bool = False
    requires_approval: bool = False
    dependent_count: Optional[int] = None
    recent_payment_count: Optional[int] = None
    checked_at: Optional[datetime] = None
    warnings: List[str] = field(default_factory=list)
    check_errors: List[Dict[str, str]] = field(default_factory=list)

    @property
    def risk_level(self) -> str:
        """Risk level used as the severity of the security-check audit entry."""
        if self.is_live or self.check_errors:
            return "HIGH"
        if self.requires_approval:
            return "MEDIUM"
        return "LOW"

    @property
    def is_safe(self) -> bool:
        return not self.requires_approval

    def to_dict(self) -> Dict[str, Any]:
        return {
            "has_active_dependents": self.has_active_dependents,
            "has_recent_payments": self.has_recent_payments,
            "is_live": self.is_live,
            "requires_approval": self.requires_approval,
            "dependent_count": self.dependent_count,
            "recent_payment_count": self.recent_payment_count,
            "checked_at": to_iso(self.checked_at),
            "warnings": list(self.warnings),
            "check_errors": list(self.check_errors),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["SecurityCheckResult"]:
        if not data:
            return None
        return cls(
            has_active_dependents=data.get("has_active_dependents", False),
            has_recent_payments=data.get("has_recent_payments", False),
            is_live=data.get("is_live", False),
            requires_approval=data.get("requires_approval", False),
            dependent_count=data.get("dependent_count"),
            recent_payment_count=data.get("recent_payment_count"),
            checked_at=parse_datetime(data.get("checked_at")),
            warnings=list(data.get("warnings") or []),
            check_errors=list(data.get("check_errors") or []),
        )
