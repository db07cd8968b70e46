from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from kasira.domain.errors import AlreadySettledError, NotFoundError, ValidationError
from kasira.domain.models import STATUS_EXPIRED, STATUS_PENDING, STATUS_SUCCESS, TERMINAL_STATUSES, Transaction
from kasira.repositories.unit_of_work import RepositoryUnitOfWork, UnitOfWork
from kasira.services.notifier import (
    PAYMENT_STATUS_UPDATED,
    STOCK_CHANGED,
    TRANSACTION_CREATED,
    branch_channel,
    owner_channel,
)

log = logging.getLogger("kasira.transactions")


class SettlementService:
    """Drives non-cash transactions from ``pending`` to a terminal status.

    ``pending`` may move to ``success``, ``failed`` or ``expired``; nothing
    leaves a terminal status. A failed or expired payment gives its reserved
    stock back to the products in the same write that changes the status.
    """

    def __init__(
        self,
        repo,
        notifier,
        uow_factory: Callable[[], UnitOfWork] | None = None,
        clock: Callable[[], datetime] | None = None,
        expiry_minutes: int = 60,
    ):
        self.repo = repo
        self.notifier = notifier
        self.uow_factory = uow_factory or (lambda: RepositoryUnitOfWork(repo))
        self.clock = clock or datetime.now
        self.expiry_minutes = expiry_minutes

    def _now_iso(self) -> str:
        return self.clock().replace(microsecond=0).isoformat(sep=" ")

    def apply_settlement(self, transaction_id: str, new_status: str) -> Transaction:
        if new_status not in TERMINAL_STATUSES:
            raise ValidationError(f"Settlement status must be one of: {', '.join(TERMINAL_STATUSES)}.")

        tx = self.repo.get_transaction(transaction_id)
        if not tx:
            raise NotFoundError("Transaction not found.")
        if tx.status != STATUS_PENDING:
            raise AlreadySettledError(tx.id, tx.status, new_status)

        restock = new_status != STATUS_SUCCESS
        with self.uow_factory() as uow:
            applied = uow.settle_transaction(tx.id, new_status, self._now_iso(), restock)
        if not applied:
            # another callback settled it between the read and the write
            current = self.repo.get_transaction(tx.id)
            raise AlreadySettledError(tx.id, current.status if current else tx.status, new_status)

        settled = self.repo.get_transaction(tx.id)
        log.info("transaction_settled tx=%s status=%s restock=%s", tx.id, new_status, restock)
        self._announce(settled, restock)
        return settled

    def _announce(self, tx: Transaction, restocked: bool) -> None:
        branch_key = branch_channel(tx.branch_id)
        self.notifier.publish(branch_key, PAYMENT_STATUS_UPDATED, {"transaction_id": tx.id, "status": tx.status})

        if tx.status == STATUS_SUCCESS:
            branch = self.repo.get_branch(tx.branch_id)
            if branch:
                self.notifier.publish(owner_channel(branch.owner_id), TRANSACTION_CREATED, tx)
            else:
                log.warning("settled_transaction_branch_missing tx=%s branch=%s", tx.id, tx.branch_id)
            self.notifier.publish(branch_key, STOCK_CHANGED, {"transaction_id": tx.id, "product_ids": []})
        elif restocked:
            self.notifier.publish(
                branch_key,
                STOCK_CHANGED,
                {"transaction_id": tx.id, "product_ids": [it.product_id for it in tx.items]},
            )

    def handle_gateway_callback(self, transaction_id: str, new_status: str) -> Transaction:
        """Gateway entry point: duplicate callbacks are ignored, conflicting ones raise."""
        try:
            return self.apply_settlement(transaction_id, new_status)
        except AlreadySettledError as e:
            if not e.is_duplicate:
                log.warning(
                    "settlement_conflict tx=%s current=%s requested=%s",
                    e.transaction_id, e.current_status, e.requested_status,
                )
                raise
            log.info("settlement_duplicate_ignored tx=%s status=%s", e.transaction_id, e.current_status)
            return self.repo.get_transaction(transaction_id)

    def expire_stale(self, max_age: Optional[timedelta] = None) -> list[Transaction]:
        age = max_age if max_age is not None else timedelta(minutes=self.expiry_minutes)
        cutoff = (self.clock() - age).replace(microsecond=0).isoformat(sep=" ")
        expired: list[Transaction] = []
        for tx in self.repo.list_pending_before(cutoff):
            try:
                expired.append(self.apply_settlement(tx.id, STATUS_EXPIRED))
            except AlreadySettledError:
                log.info("expire_skipped_already_settled tx=%s", tx.id)
        return expired
