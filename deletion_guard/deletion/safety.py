"""Pre-deletion security checks.

Evaluates an event against risk conditions before its deletion is scheduled.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from ..models.security_check import SecurityCheckResult
from ..registry import ROOT_COLLECTION
from ..storage.documents import DocumentStore
from ..utils.timeutil import parse_datetime, utc_now

logger = logging.getLogger(__name__)

REGISTRATIONS_COLLECTION = "registrations"
PAYMENTS_COLLECTION = "payments"


class SecurityChecker:
    """Read-only risk evaluation for a deletion target.

    Counts registrations and recent payments and checks whether the event is
    running right now. If a read fails the corresponding flag is set to True
    and the failure is recorded, so an unknown state never permits deletion
    silently.

    Attributes:
        store: Document store holding events and their dependents
        recent_payment_days: Window for the recent payments check
    """

    def __init__(
        self,
        store: DocumentStore,
        recent_payment_days: int = 7,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize security checker.

        Args:
            store: Document store to read from
            recent_payment_days: Payments created within this many days count as recent
            clock: Time source
        """
        self.store = store
        self.recent_payment_days = recent_payment_days
        self._clock = clock

    async def check(self, target_id: str, target: Optional[Dict[str, Any]] = None) -> SecurityCheckResult:
        """Run all checks for a target.

        Args:
            target_id: Event identifier
            target: Event document if the caller already loaded it

        Returns:
            SecurityCheckResult with flags, counts and warnings
        """
        now = self._clock()
        result = SecurityCheckResult(checked_at=now)

        try:
            result.dependent_count = await self.store.count(REGISTRATIONS_COLLECTION, {"event": target_id})
            result.has_active_dependents = result.dependent_count > 0
        except Exception as e:
            logger.warning("Registration count failed for %s: %s", target_id, e)
            result.has_active_dependents = True
            result.check_errors.append({"check": "has_active_dependents", "error": str(e)})

        cutoff = now - timedelta(days=self.recent_payment_days)
        try:
            result.recent_payment_count = await self.store.count(
                PAYMENTS_COLLECTION,
                {"event": target_id, "created_at": {"$gte": cutoff}},
            )
            result.has_recent_payments = result.recent_payment_count > 0
        except Exception as e:
            logger.warning("Recent payment count failed for %s: %s", target_id, e)
            result.has_recent_payments = True
            result.check_errors.append({"check": "has_recent_payments", "error": str(e)})

        try:
            if target is None:
                target = await self.store.find_one(ROOT_COLLECTION, {"id": target_id})
            if target is None:
                raise LookupError(f"event {target_id} not found")
            result.is_live = self._is_live(target, now)
        except Exception as e:
            logger.warning("Live window check failed for %s: %s", target_id, e)
            result.is_live = True
            result.check_errors.append({"check": "is_live", "error": str(e)})

        result.requires_approval = result.has_active_dependents or result.has_recent_payments or result.is_live
        result.warnings = self.generate_warnings(result)

        logger.info(
            "Security checks for %s: dependents=%s recent_payments=%s live=%s errors=%d",
            target_id,
            result.has_active_dependents,
            result.has_recent_payments,
            result.is_live,
            len(result.check_errors),
        )
        return result

    @staticmethod
    def _is_live(target: Dict[str, Any], now: datetime) -> bool:
        start = parse_datetime(target.get("start_date"))
        end = parse_datetime(target.get("end_date"))
        if start is None or end is None:
            return False
        return start <= now <= end

    @staticmethod
    def generate_warnings(result: SecurityCheckResult) -> list[str]:
        """Human-readable warnings for the flags that are set."""
        warnings = []

        if result.has_active_dependents:
            warnings.append("Event has active registrations that will be permanently deleted")

        if result.has_recent_payments:
            warnings.append("Event has recent payments that will be permanently deleted")

        if result.is_live:
            warnings.append("Event is currently ongoing - deletion may disrupt active participants")

        if result.check_errors:
            failed = ", ".join(error["check"] for error in result.check_errors)
            warnings.append(f"Some checks could not be completed ({failed}) and were treated as failing")

        if result.requires_approval:
            warnings.append("Deletion requires additional admin approval")

        return warnings
