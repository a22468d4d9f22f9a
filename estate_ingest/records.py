"""Domain records persisted by the stores."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from .config import SourceConfig


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def from_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def in_flight(self) -> bool:
        return self in (JobStatus.PENDING, JobStatus.RUNNING)


class JobStage(str, Enum):
    """Pipeline states; ``completed`` and ``failed`` are terminal."""

    PENDING = "pending"
    FETCHING = "fetching"
    NORMALIZING = "normalizing"
    DEDUPING = "deduping"
    UPSERTING = "upserting"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (JobStage.COMPLETED, JobStage.FAILED)


class ListingStatus(str, Enum):
    ACTIVE = "active"
    REMOVED = "removed"


class OptOutStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(slots=True)
class SourceRecord:
    """A registered source: its configuration plus registry bookkeeping."""

    id: int
    config: SourceConfig
    created_at: datetime
    updated_at: datetime

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def is_active(self) -> bool:
        return self.config.is_active

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "source_type": self.config.source_type.value,
            "is_active": self.is_active,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
        }


@dataclass(slots=True)
class JobCounters:
    found: int = 0
    new: int = 0
    duplicate: int = 0
    errored: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "found": self.found,
            "new": self.new,
            "duplicate": self.duplicate,
            "errored": self.errored,
        }


@dataclass(slots=True)
class IngestionJob:
    id: str
    source_name: str
    status: JobStatus
    stage: JobStage
    counters: JobCounters
    created_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None
    error: str | None = None
    cancel_requested: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source_name": self.source_name,
            "status": self.status.value,
            "stage": self.stage.value,
            **self.counters.as_dict(),
            "error": self.error,
            "created_at": to_iso(self.created_at),
            "started_at": to_iso(self.started_at),
            "finished_at": to_iso(self.finished_at),
        }


@dataclass(slots=True)
class ListingDraft:
    """Normalized listing attributes produced from one raw record."""

    title: str
    price: Decimal
    city: str
    surface: float | None = None
    description: str = ""
    property_type: str | None = None
    rooms: int | None = None
    bedrooms: int | None = None
    department: str | None = None
    region: str | None = None
    external_id: str | None = None
    url: str | None = None
    images: list[str] = field(default_factory=list)
    renovation_score: int = 0
    renovation_keywords: list[str] = field(default_factory=list)


@dataclass(slots=True)
class Listing:
    id: str
    fingerprint: str
    source_name: str
    draft: ListingDraft
    status: ListingStatus
    created_at: datetime
    updated_at: datetime
    removed_reason: str | None = None

    def as_dict(self) -> dict[str, Any]:
        draft = self.draft
        return {
            "id": self.id,
            "fingerprint": self.fingerprint,
            "source_name": self.source_name,
            "title": draft.title,
            "price": str(draft.price),
            "city": draft.city,
            "surface": draft.surface,
            "description": draft.description,
            "property_type": draft.property_type,
            "rooms": draft.rooms,
            "bedrooms": draft.bedrooms,
            "department": draft.department,
            "region": draft.region,
            "external_id": draft.external_id,
            "url": draft.url,
            "images": list(draft.images),
            "renovation_score": draft.renovation_score,
            "renovation_keywords": list(draft.renovation_keywords),
            "status": self.status.value,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
        }

    def as_public_dict(self) -> dict[str, Any]:
        """Listing as shown to visitors, without dedup bookkeeping."""

        payload = self.as_dict()
        for key in ("fingerprint", "source_name", "status"):
            payload.pop(key)
        return payload


@dataclass(slots=True)
class OptOutRequest:
    id: str
    listing_id: str
    status: OptOutStatus
    created_at: datetime
    email: str | None = None
    reason: str | None = None
    decision_note: str | None = None
    processed_at: datetime | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "listing_id": self.listing_id,
            "status": self.status.value,
            "email": self.email,
            "reason": self.reason,
            "decision_note": self.decision_note,
            "created_at": to_iso(self.created_at),
            "processed_at": to_iso(self.processed_at),
        }


__all__ = [
    "IngestionJob",
    "JobCounters",
    "JobStage",
    "JobStatus",
    "Listing",
    "ListingDraft",
    "ListingStatus",
    "OptOutRequest",
    "OptOutStatus",
    "SourceRecord",
    "from_iso",
    "to_iso",
    "utcnow",
]
