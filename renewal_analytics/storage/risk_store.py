"""In-process storage for flagged renewal risks."""

import threading
from typing import Callable, List, Optional

from typing_extensions import Protocol

from renewal_analytics.core.models import RenewalRisk, RiskStatus


class RiskRepository(Protocol):
    """Storage used by RenewalRiskService. Risks are never deleted."""

    def add_many(self, risks: List[RenewalRisk]) -> None: ...

    def list(
        self, predicate: Optional[Callable[[RenewalRisk], bool]] = None
    ) -> List[RenewalRisk]: ...

    def set_status(self, risk_id: str, status: RiskStatus) -> bool: ...


class InMemoryRiskRepository:
    def __init__(self):
        self._risks: List[RenewalRisk] = []
        self._lock = threading.Lock()

    def add_many(self, risks: List[RenewalRisk]) -> None:
        with self._lock:
            self._risks.extend(risks)

    def list(
        self, predicate: Optional[Callable[[RenewalRisk], bool]] = None
    ) -> List[RenewalRisk]:
        with self._lock:
            if predicate is None:
                return list(self._risks)
            return [risk for risk in self._risks if predicate(risk)]

    def set_status(self, risk_id: str, status: RiskStatus) -> bool:
        with self._lock:
            for risk in self._risks:
                if risk.id == risk_id:
                    risk.status = status
                    return True
        return False

    def __len__(self) -> int:
        with self._lock:
            return len(self._risks)
