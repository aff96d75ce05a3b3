"""In-process storage for underbilling alerts."""

import threading
from typing import Callable, List, Optional

import structlog
from typing_extensions import Protocol

from renewal_analytics.core.models import UnderbillingAlert

logger = structlog.get_logger()


class AlertRepository(Protocol):
    """Storage used by UnderbillingDetector. Alerts are never deleted."""

    def add_many(self, alerts: List[UnderbillingAlert]) -> None: ...

    def list(
        self, predicate: Optional[Callable[[UnderbillingAlert], bool]] = None
    ) -> List[UnderbillingAlert]: ...

    def mark_resolved(self, alert_id: str) -> bool: ...


class InMemoryAlertRepository:
    """List-backed alert store; every access is serialized by one lock."""

    def __init__(self):
        self._alerts: List[UnderbillingAlert] = []
        self._lock = threading.Lock()

    def add_many(self, alerts: List[UnderbillingAlert]) -> None:
        with self._lock:
            self._alerts.extend(alerts)

    def list(
        self, predicate: Optional[Callable[[UnderbillingAlert], bool]] = None
    ) -> List[UnderbillingAlert]:
        with self._lock:
            if predicate is None:
                return list(self._alerts)
            return [alert for alert in self._alerts if predicate(alert)]

    def mark_resolved(self, alert_id: str) -> bool:
        """
        Flag an alert as resolved.

        Returns:
            True if the alert exists (already-resolved alerts included)
        """
        with self._lock:
            for alert in self._alerts:
                if alert.id == alert_id:
                    alert.resolved = True
                    return True

        logger.debug("alert_not_found", alert_id=alert_id)
        return False

    def __len__(self) -> int:
        with self._lock:
            return len(self._alerts)
