"""Takedown workflow; the only component allowed to suppress listings."""

from __future__ import annotations

import structlog

from ..errors import InvalidStateError
from ..infra.listings import ListingStore
from ..infra.optouts import OptOutStore
from ..logging_conf import configure_logging
from ..records import OptOutRequest, OptOutStatus

SOURCE_DEACTIVATED = "source_deactivated"


def optout_reason(request_id: str) -> str:
    return f"optout:{request_id}"


class OptOutProcessor:
    """Review opt-out requests: ``pending → approved | rejected``.

    Approval removes the listing and marks the request in one transaction.
    A pending request whose listing was already removed by another path is
    refused with ``InvalidStateError`` and stays pending so it can be rejected.
    """

    def __init__(
        self,
        listings: ListingStore,
        optouts: OptOutStore,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.listings = listings
        self.optouts = optouts
        self.logger = logger or configure_logging().bind(component="optout")

    def submit(self, listing_id: str, email: str | None = None, reason: str | None = None) -> OptOutRequest:
        # Removed and unknown listings both surface as NotFoundError.
        self.listings.get_active(listing_id)
        request_id = self.optouts.create(listing_id, email, reason)
        self.logger.info("optout_submitted", request_id=request_id, listing_id=listing_id)
        return self.optouts.get(request_id)

    def approve(self, request_id: str) -> OptOutRequest:
        with self.listings.manager.transaction(self.listings.db_path) as conn:
            request = self.optouts.get(request_id, conn=conn)
            if request.status is not OptOutStatus.PENDING:
                raise InvalidStateError(f"Opt-out request {request_id} is already {request.status.value}")
            if not self.listings.remove(request.listing_id, optout_reason(request_id), conn=conn):
                raise InvalidStateError(
                    f"Listing {request.listing_id} is no longer active; reject request {request_id} instead"
                )
            self.optouts.decide(request_id, OptOutStatus.APPROVED, conn=conn)
        self.logger.info("optout_approved", request_id=request_id, listing_id=request.listing_id)
        return self.optouts.get(request_id)

    def reject(self, request_id: str, reason: str | None = None) -> OptOutRequest:
        with self.optouts.manager.transaction(self.optouts.db_path) as conn:
            request = self.optouts.get(request_id, conn=conn)
            if request.status is not OptOutStatus.PENDING:
                raise InvalidStateError(f"Opt-out request {request_id} is already {request.status.value}")
            self.optouts.decide(request_id, OptOutStatus.REJECTED, note=reason, conn=conn)
        self.logger.info("optout_rejected", request_id=request_id, listing_id=request.listing_id)
        return self.optouts.get(request_id)

    def list_requests(self, status: OptOutStatus | None = None, limit: int = 100) -> list[OptOutRequest]:
        return self.optouts.list_requests(status=status, limit=limit)

    def suppress_source(self, source_name: str) -> int:
        """Remove every active listing of a deactivated source."""

        removed = self.listings.remove_by_source(source_name, SOURCE_DEACTIVATED)
        self.logger.info("source_listings_suppressed", source=source_name, removed=removed)
        return removed


__all__ = ["OptOutProcessor", "SOURCE_DEACTIVATED", "optout_reason"]
