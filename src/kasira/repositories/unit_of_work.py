from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from kasira.domain.models import Transaction


class UnitOfWork(Protocol):
    def __enter__(self) -> "UnitOfWork": ...
    def __exit__(self, exc_type, exc, tb) -> None: ...
    def create_transaction(self, tx: Transaction) -> Transaction: ...
    def settle_transaction(self, transaction_id: str, status: str, settled_at: str, restock: bool) -> bool: ...


@dataclass
class RepositoryUnitOfWork:
    """Unit of Work adapter for transactional write use-cases.

    The repository methods already run each write inside a single SQLite
    transaction (stock decrement + record insert, status change + restock).
    This class centralizes write orchestration so services stay persistence-agnostic.
    """

    repo: object

    def __enter__(self) -> "RepositoryUnitOfWork":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        return None

    def create_transaction(self, tx: Transaction) -> Transaction:
        return self.repo.create_transaction(tx)

    def settle_transaction(self, transaction_id: str, status: str, settled_at: str, restock: bool) -> bool:
        return bool(self.repo.settle_transaction(transaction_id, status, settled_at, restock))
