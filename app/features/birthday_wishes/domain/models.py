"""
Domain models for the birthday wish feature.

Routes and users are read-only snapshots of store rows; the scan never
creates or mutates them. Reports and run state are process-local.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

BIRTHDAY_METADATA_NAME = "birthday_date"


class Route(BaseModel):
    """A named grouping of users."""

    id: str
    name: str


class MetadataEntry(BaseModel):
    """Tagged `{id, name, value}` record attached to a user."""

    model_config = ConfigDict(extra="allow")

    id: str | int | None = None
    name: str
    value: Any = None


class BirthdayUser(BaseModel):
    """User row as returned by the store."""

    model_config = ConfigDict(extra="allow")

    id: str
    route_id: str
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    cell_phone: str | None = None
    country: str | None = None
    metadata: list[MetadataEntry] = Field(default_factory=list)

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)


@dataclass(slots=True)
class ScanReport:
    """Success/failure counters for one run."""

    succeeded: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.succeeded + self.failed

    def record(self, delivered: bool) -> None:
        if delivered:
            self.succeeded += 1
        else:
            self.failed += 1

    def to_dict(self) -> dict:
        return {"succeeded": self.succeeded, "failed": self.failed, "total": self.total}


@dataclass(slots=True)
class ScanResult:
    """Outcome of a complete route/user traversal."""

    report: ScanReport
    target_date: date
    started_at: datetime
    finished_at: datetime
    routes_visited: int = 0
    users_visited: int = 0
    route_pages_fetched: int = 0
    user_pages_fetched: int = 0

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> dict:
        return {
            **self.report.to_dict(),
            "target_date": self.target_date.isoformat(),
            "started_at": self.started_at.isoformat(),
            "duration_seconds": round(self.duration_seconds, 2),
            "routes_visited": self.routes_visited,
            "users_visited": self.users_visited,
            "route_pages_fetched": self.route_pages_fetched,
            "user_pages_fetched": self.user_pages_fetched,
        }


@dataclass(slots=True)
class RunState:
    """Day-level dedup flag, owned by a single RunScheduler."""

    last_execution_date: datetime | None = None


class RunDecision(str, Enum):
    PROCEED = "proceed"
    SKIP = "skip"


@dataclass(slots=True)
class RunOutcome:
    """What happened when the controller was asked to run."""

    status: str  # completed, skipped, connection_failed, already_running, failed
    attempted_at: datetime
    result: ScanResult | None = None
    error: str | None = None
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = {
            "status": self.status,
            "attempted_at": self.attempted_at.isoformat(),
        }
        if self.result is not None:
            data["result"] = self.result.to_dict()
        if self.error:
            data["error"] = self.error
        if self.details:
            data.update(self.details)
        return data
