"""Pydantic models for sync outcomes returned to callers."""
from datetime import date
from typing import Optional

from pydantic import BaseModel, Field


class IntegrationResult(BaseModel):
    """Outcome of processing one integration."""

    integration_id: str
    platform: str
    status: str = Field(..., description="success | skipped | error")
    message: Optional[str] = None
    metric_type: Optional[str] = None
    snapshot_date: Optional[date] = None
    records_fetched: int = 0
    category: Optional[str] = Field(None, description="Failure category when status=error")
    http_status: Optional[int] = None


class CycleSummary(BaseModel):
    """Summary of one scheduling cycle."""

    integrations_checked: int = 0
    synced: int = 0
    skipped: int = 0
    failed: int = 0
    results: list[IntegrationResult] = Field(default_factory=list)

    @classmethod
    def from_results(cls, results: list[IntegrationResult]) -> "CycleSummary":
        return cls(
            integrations_checked=len(results),
            synced=sum(1 for r in results if r.status == "success"),
            skipped=sum(1 for r in results if r.status == "skipped"),
            failed=sum(1 for r in results if r.status == "error"),
            results=results,
        )
