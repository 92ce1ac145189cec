from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class LedgerSnapshot:
    transactions: Dict[str, int]
    points: Dict[str, int]
    rejections: Dict[str, Dict[str, int]]
    suspicious: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        return {
            "transactions": dict(self.transactions),
            "points": dict(self.points),
            "rejections": {key: dict(value) for key, value in self.rejections.items()},
            "suspicious": dict(self.suspicious),
        }


class LedgerObservabilityStore:
    """Collect ledger engine telemetry for dashboards and alerting."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._transactions: Dict[str, int] = defaultdict(int)
        self._points: Dict[str, int] = defaultdict(int)
        self._rejections_by_code: Dict[str, int] = defaultdict(int)
        self._rejections_by_operation: Dict[str, int] = defaultdict(int)
        self._suspicious: Dict[str, int] = defaultdict(int)

    def record_transaction(self, transaction_type: str, balance_delta: int) -> None:
        with self._lock:
            self._transactions[transaction_type] += 1
            if balance_delta > 0:
                self._points["credited"] += balance_delta
            elif balance_delta < 0:
                self._points["debited"] += -balance_delta

    def record_balance_change(self, balance_delta: int) -> None:
        with self._lock:
            if balance_delta > 0:
                self._points["credited"] += balance_delta
            elif balance_delta < 0:
                self._points["debited"] += -balance_delta

    def record_rejection(self, operation: str, code: str) -> None:
        with self._lock:
            self._rejections_by_code[code] += 1
            self._rejections_by_operation[operation] += 1

    def record_suspicious_toggle(self, flagged: bool) -> None:
        with self._lock:
            self._suspicious["flagged" if flagged else "cleared"] += 1

    def snapshot(self) -> LedgerSnapshot:
        with self._lock:
            transactions = dict(self._transactions)
            points = {"credited": self._points.get("credited", 0), "debited": self._points.get("debited", 0)}
            rejections = {
                "by_code": dict(self._rejections_by_code),
                "by_operation": dict(self._rejections_by_operation),
            }
            suspicious = dict(self._suspicious)
        return LedgerSnapshot(
            transactions=transactions,
            points=points,
            rejections=rejections,
            suspicious=suspicious,
        )

    def reset(self) -> None:
        with self._lock:
            self._transactions.clear()
            self._points.clear()
            self._rejections_by_code.clear()
            self._rejections_by_operation.clear()
            self._suspicious.clear()


_STORE = LedgerObservabilityStore()


def get_ledger_store() -> LedgerObservabilityStore:
    return _STORE


__all__ = ["get_ledger_store", "LedgerObservabilityStore", "LedgerSnapshot"]
