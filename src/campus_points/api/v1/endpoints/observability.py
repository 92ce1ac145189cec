"""Observability endpoints for ledger telemetry and Prometheus metrics."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from campus_points.api.dependencies.security import require_operator_api_key
from campus_points.observability.ledger import get_ledger_store


router = APIRouter(prefix="/observability", tags=["Observability"])


@router.get(
    "/ledger",
    dependencies=[Depends(require_operator_api_key)],
    summary="Ledger engine observability snapshot",
)
async def get_ledger_snapshot() -> dict[str, object]:
    """Retrieve aggregated ledger metrics (requires operator API key)."""
    return get_ledger_store().snapshot().as_dict()


def _format_metric(name: str, description: str, value: int | float, labels: dict[str, str] | None = None) -> list[str]:
    label_fragment = ""
    if labels:
        formatted = ",".join(f'{key}="{val}"' for key, val in sorted(labels.items()))
        label_fragment = f"{{{formatted}}}"
    return [
        f"# HELP {name} {description}",
        f"# TYPE {name} gauge",
        f"{name}{label_fragment} {value}",
    ]


@router.get(
    "/prometheus",
    dependencies=[Depends(require_operator_api_key)],
    summary="Prometheus-formatted ledger metrics",
    response_class=PlainTextResponse,
)
async def get_prometheus_metrics() -> PlainTextResponse:
    snapshot = get_ledger_store().snapshot()

    lines: list[str] = []
    for transaction_type, count in sorted(snapshot.transactions.items()):
        lines.extend(
            _format_metric(
                "campus_points_transactions_total",
                "Committed ledger transactions grouped by type",
                count,
                labels={"type": transaction_type},
            )
        )
    lines.extend(
        _format_metric(
            "campus_points_points_credited_total",
            "Points credited to balances",
            snapshot.points.get("credited", 0),
        )
    )
    lines.extend(
        _format_metric(
            "campus_points_points_debited_total",
            "Points debited from balances",
            snapshot.points.get("debited", 0),
        )
    )
    for code, count in sorted(snapshot.rejections.get("by_code", {}).items()):
        lines.extend(
            _format_metric(
                "campus_points_rejections_total",
                "Rejected ledger operations grouped by error code",
                count,
                labels={"code": code},
            )
        )
    for state, count in sorted(snapshot.suspicious.items()):
        lines.extend(
            _format_metric(
                "campus_points_suspicious_toggles_total",
                "Suspicious flag changes",
                count,
                labels={"state": state},
            )
        )

    return PlainTextResponse("\n".join(lines) + "\n")
