import sqlite3
import threading
from pathlib import Path

import pytest

from conftest import RecordingNotifier, seed_store

from kasira.domain.errors import OutOfStockError
from kasira.repositories.sqlite_repo import SqliteRepository
from kasira.services.settlement_service import SettlementService
from kasira.services.transaction_service import TransactionService


class FailingUnitOfWork:
    def __init__(self, repo):
        self.repo = repo

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return None

    def create_transaction(self, tx):
        raise RuntimeError("disk full")

    def settle_transaction(self, transaction_id, status, settled_at, restock):
        raise RuntimeError("disk full")


def _setup(tmp_path: Path, stock: int = 5):
    repo = SqliteRepository(tmp_path / "atomic.db")
    repo.init_db()
    return (repo, *seed_store(repo, stock=stock))


def test_failed_write_publishes_nothing(tmp_path: Path):
    repo, _owner, branch, cashier, product = _setup(tmp_path)
    notifier = RecordingNotifier()
    svc = TransactionService(repo, notifier, uow_factory=lambda: FailingUnitOfWork(repo))

    with pytest.raises(RuntimeError, match="disk full"):
        svc.create_transaction(branch.id, cashier.id, [{"product_id": product.id, "quantity": 1}], "CASH")

    assert repo.get_product(product.id).stock == 5
    assert repo.list_transactions() == []
    assert notifier.events == []


def test_insert_failure_rolls_back_stock_decrement(tmp_path: Path):
    repo, _owner, branch, cashier, product = _setup(tmp_path)
    svc = TransactionService(repo, RecordingNotifier())
    tx = svc.create_transaction(branch.id, cashier.id, [{"product_id": product.id, "quantity": 1}], "CASH")
    assert repo.get_product(product.id).stock == 4

    # same id again: stock is decremented first, then the insert hits the primary key
    with pytest.raises(sqlite3.IntegrityError):
        repo.create_transaction(tx)

    assert repo.get_product(product.id).stock == 4
    assert len(repo.list_transactions()) == 1


def test_failed_settlement_keeps_transaction_pending(tmp_path: Path):
    repo, _owner, branch, cashier, product = _setup(tmp_path)
    notifier = RecordingNotifier()
    tx = TransactionService(repo, notifier).create_transaction(
        branch.id, cashier.id, [{"product_id": product.id, "quantity": 2}], "TRANSFER"
    )
    settlement = SettlementService(repo, notifier, uow_factory=lambda: FailingUnitOfWork(repo))
    before = len(notifier.events)

    with pytest.raises(RuntimeError):
        settlement.apply_settlement(tx.id, "failed")

    assert repo.get_transaction(tx.id).status == "pending"
    assert repo.get_product(product.id).stock == 3
    assert len(notifier.events) == before


def test_concurrent_checkouts_never_oversell(tmp_path: Path):
    repo, _owner, branch, cashier, product = _setup(tmp_path, stock=5)
    svc = TransactionService(repo, RecordingNotifier())
    outcomes = []
    lock = threading.Lock()

    def checkout():
        try:
            svc.create_transaction(branch.id, cashier.id, [{"product_id": product.id, "quantity": 1}], "CASH")
            result = "ok"
        except OutOfStockError:
            result = "out"
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=checkout) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert outcomes.count("ok") == 5
    assert outcomes.count("out") == 3
    assert repo.get_product(product.id).stock == 0
