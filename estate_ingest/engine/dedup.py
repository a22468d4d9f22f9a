"""Deduplication layer on top of the listing store's fingerprint constraint."""

from __future__ import annotations

from dataclasses import dataclass

from ..errors import ConflictError
from ..infra.listings import ListingStore
from ..records import ListingDraft
from .fingerprint import fingerprint


@dataclass(slots=True)
class DeduplicationResult:
    fingerprint: str
    duplicate: bool
    listing_id: str | None = None

    @property
    def is_duplicate(self) -> bool:
        return self.duplicate


def fingerprint_draft(draft: ListingDraft) -> str:
    return fingerprint(draft.title, draft.price, draft.city, draft.surface)


class DeduplicationStore:
    """Fingerprint lookups and constraint-backed inserts.

    ``is_known`` is only a fast path: correctness comes from ``store`` routing
    every insert through the unique index, so two jobs racing on the same
    content still leave exactly one active listing.
    """

    def __init__(self, listings: ListingStore) -> None:
        self.listings = listings

    def is_known(self, fingerprint_value: str) -> bool:
        return self.listings.find_active_by_fingerprint(fingerprint_value) is not None

    def store(self, fingerprint_value: str, draft: ListingDraft, source_name: str) -> DeduplicationResult:
        try:
            listing = self.listings.insert(fingerprint_value, source_name, draft)
        except ConflictError:
            return DeduplicationResult(fingerprint_value, duplicate=True)
        return DeduplicationResult(fingerprint_value, duplicate=False, listing_id=listing.id)


__all__ = ["DeduplicationResult", "DeduplicationStore", "fingerprint_draft"]
