from pathlib import Path

import pytest

from conftest import RecordingNotifier, seed_store

from kasira.domain.errors import (
    NotFoundError,
    OutOfStockError,
    ProductNotFoundError,
    UnauthorizedBranchError,
    ValidationError,
)
from kasira.domain.models import Branch, Product
from kasira.repositories.sqlite_repo import SqliteRepository
from kasira.services.transaction_service import TransactionService


def _setup(tmp_path: Path, stock: int = 5):
    repo = SqliteRepository(tmp_path / "pos.db")
    repo.init_db()
    owner, branch, cashier, product = seed_store(repo, stock=stock)
    notifier = RecordingNotifier()
    return repo, notifier, TransactionService(repo, notifier), owner, branch, cashier, product


def test_cash_sale_decrements_stock_and_settles_immediately(tmp_path: Path):
    repo, _notifier, svc, _owner, branch, cashier, product = _setup(tmp_path, stock=5)

    tx = svc.create_transaction(branch.id, cashier.id, [{"product_id": product.id, "quantity": 3}], "CASH")

    assert repo.get_product(product.id).stock == 2
    assert tx.subtotal == 30000
    assert tx.total == 30000
    assert tx.status == "success"
    assert tx.items[0].price_snapshot == 10000
    assert tx.items[0].cost_snapshot == 6000
    assert repo.get_transaction(tx.id) == tx


def test_insufficient_stock_rejects_and_leaves_stock_untouched(tmp_path: Path):
    repo, notifier, svc, _owner, branch, cashier, product = _setup(tmp_path, stock=2)

    with pytest.raises(OutOfStockError, match="Kopi Susu"):
        svc.create_transaction(branch.id, cashier.id, [{"product_id": product.id, "quantity": 3}], "CASH")

    assert repo.get_product(product.id).stock == 2
    assert repo.list_transactions() == []
    assert notifier.events == []


def test_multi_line_cart_is_all_or_nothing(tmp_path: Path):
    repo, _notifier, svc, _owner, branch, cashier, product = _setup(tmp_path, stock=5)
    other = repo.create_product(
        Product(id="PRD-2", name="Roti", category="Makanan", branch_id=branch.id, price=5000, cost_price=2000, stock=1)
    )

    with pytest.raises(OutOfStockError):
        svc.create_transaction(
            branch.id,
            cashier.id,
            [{"product_id": product.id, "quantity": 2}, {"product_id": other.id, "quantity": 4}],
            "CASH",
        )

    assert repo.get_product(product.id).stock == 5
    assert repo.get_product(other.id).stock == 1
    assert repo.list_transactions() == []


def test_repeated_product_lines_are_summed_against_stock(tmp_path: Path):
    repo, _notifier, svc, _owner, branch, cashier, product = _setup(tmp_path, stock=5)

    with pytest.raises(OutOfStockError):
        svc.create_transaction(
            branch.id,
            cashier.id,
            [{"product_id": product.id, "quantity": 3}, {"product_id": product.id, "quantity": 3}],
            "CASH",
        )
    assert repo.get_product(product.id).stock == 5


def test_unknown_product_raises_product_not_found(tmp_path: Path):
    _repo, _notifier, svc, _owner, branch, cashier, _product = _setup(tmp_path)

    with pytest.raises(ProductNotFoundError):
        svc.create_transaction(branch.id, cashier.id, [{"product_id": "PRD-NOPE", "quantity": 1}], "CASH")


def test_product_from_another_branch_is_rejected(tmp_path: Path):
    repo, _notifier, svc, owner, branch, cashier, _product = _setup(tmp_path)
    repo.create_branch(Branch(id="BR-B", name="Cabang B", location="Bandung", owner_id=owner.id))
    foreign = repo.create_product(
        Product(id="PRD-B", name="Teh", category="Minuman", branch_id="BR-B", price=4000, cost_price=1000, stock=10)
    )

    with pytest.raises(UnauthorizedBranchError):
        svc.create_transaction(branch.id, cashier.id, [{"product_id": foreign.id, "quantity": 1}], "CASH")
    assert repo.get_product(foreign.id).stock == 10


def test_cashier_of_another_branch_cannot_sell(tmp_path: Path):
    repo, _notifier, svc, owner, _branch, cashier, _product = _setup(tmp_path)
    other = repo.create_branch(Branch(id="BR-B", name="Cabang B", location="Bandung", owner_id=owner.id))
    repo.create_product(
        Product(id="PRD-B", name="Teh", category="Minuman", branch_id=other.id, price=4000, cost_price=1000, stock=10)
    )

    with pytest.raises(UnauthorizedBranchError):
        svc.create_transaction(other.id, cashier.id, [{"product_id": "PRD-B", "quantity": 1}], "CASH")


def test_unknown_branch_and_cashier_raise_not_found(tmp_path: Path):
    _repo, _notifier, svc, _owner, branch, cashier, product = _setup(tmp_path)
    line = [{"product_id": product.id, "quantity": 1}]

    with pytest.raises(NotFoundError, match="Branch"):
        svc.create_transaction("BR-NOPE", cashier.id, line, "CASH")
    with pytest.raises(NotFoundError, match="Cashier"):
        svc.create_transaction(branch.id, "USR-NOPE", line, "CASH")


@pytest.mark.parametrize(
    "lines, kwargs, message",
    [
        ([], {}, "Cart is empty"),
        ([{"product_id": "PRD-1", "quantity": 0}], {}, "Quantity must be >= 1"),
        ([{"product_id": "PRD-1", "quantity": 1}], {"tax": -1}, "Tax must be >= 0"),
        ([{"product_id": "PRD-1", "quantity": 1}], {"discount": 50000}, "Discount cannot exceed"),
    ],
)
def test_invalid_carts_are_rejected(tmp_path: Path, lines, kwargs, message):
    repo, _notifier, svc, _owner, branch, cashier, product = _setup(tmp_path)

    with pytest.raises(ValidationError, match=message):
        svc.create_transaction(branch.id, cashier.id, lines, "CASH", **kwargs)
    assert repo.get_product(product.id).stock == 5


def test_unknown_payment_method_is_rejected(tmp_path: Path):
    _repo, _notifier, svc, _owner, branch, cashier, product = _setup(tmp_path)

    with pytest.raises(ValidationError, match="Unsupported payment method"):
        svc.create_transaction(branch.id, cashier.id, [{"product_id": product.id, "quantity": 1}], "CRYPTO")


def test_total_includes_tax_minus_discount(tmp_path: Path):
    _repo, _notifier, svc, _owner, branch, cashier, product = _setup(tmp_path)

    tx = svc.create_transaction(
        branch.id, cashier.id, [{"product_id": product.id, "quantity": 2}], "CASH", tax=2200, discount=1000
    )

    assert tx.subtotal == 20000
    assert tx.total == 21200


def test_transfer_gets_virtual_account_and_stays_pending(tmp_path: Path):
    repo, notifier, svc, owner, branch, cashier, product = _setup(tmp_path)

    tx = svc.create_transaction(
        branch.id, cashier.id, [{"product_id": product.id, "quantity": 1}], "TRANSFER", bank="bni"
    )

    assert tx.status == "pending"
    assert tx.payment_details.bank == "BNI"
    assert tx.payment_details.va_number.startswith("88000")
    assert len(tx.payment_details.va_number) == 13
    assert tx.payment_details.gateway_order_id.startswith("MID-")
    assert repo.get_product(product.id).stock == 4
    assert notifier.on(f"owner.{owner.id}", "transaction-created") == []
    assert len(notifier.on(f"branch.{branch.id}", "stock-changed")) == 1


def test_qris_payload_references_the_transaction(tmp_path: Path):
    _repo, _notifier, svc, _owner, branch, cashier, product = _setup(tmp_path)

    tx = svc.create_transaction(branch.id, cashier.id, [{"product_id": product.id, "quantity": 1}], "QRIS")

    assert tx.status == "pending"
    assert tx.id in tx.payment_details.qris_url
    assert tx.payment_details.va_number is None


def test_unsupported_bank_is_rejected_before_stock_moves(tmp_path: Path):
    repo, _notifier, svc, _owner, branch, cashier, product = _setup(tmp_path)

    with pytest.raises(ValidationError, match="Unsupported bank"):
        svc.create_transaction(
            branch.id, cashier.id, [{"product_id": product.id, "quantity": 1}], "TRANSFER", bank="XYZ"
        )
    assert repo.get_product(product.id).stock == 5


def test_cash_sale_notifies_branch_and_owner(tmp_path: Path):
    _repo, notifier, svc, owner, branch, cashier, product = _setup(tmp_path)

    tx = svc.create_transaction(branch.id, cashier.id, [{"product_id": product.id, "quantity": 1}], "CASH")

    assert notifier.on(f"owner.{owner.id}", "transaction-created") == [tx]
    stock_events = notifier.on(f"branch.{branch.id}", "stock-changed")
    assert stock_events == [{"transaction_id": tx.id, "product_ids": [product.id]}]


def test_owner_can_sell_at_own_branch(tmp_path: Path):
    _repo, _notifier, svc, owner, branch, _cashier, product = _setup(tmp_path)

    tx = svc.create_transaction(branch.id, owner.id, [{"product_id": product.id, "quantity": 1}], "CASH")
    assert tx.cashier_id == owner.id


def test_line_items_keep_snapshots_after_product_edit(tmp_path: Path):
    repo, _notifier, svc, _owner, branch, cashier, product = _setup(tmp_path)

    tx = svc.create_transaction(branch.id, cashier.id, [{"product_id": product.id, "quantity": 1}], "CASH")
    repo.update_product(product.id, "Kopi Susu Gula Aren", "Minuman", 15000, 9000, "")
    repo.delete_product(product.id)

    stored = repo.get_transaction(tx.id)
    assert stored.items[0].name == "Kopi Susu"
    assert stored.items[0].price_snapshot == 10000
    assert stored.items[0].cost_snapshot == 6000


def test_quote_applies_tax_rate_without_touching_stock(tmp_path: Path):
    repo, _notifier, svc, _owner, branch, _cashier, product = _setup(tmp_path)

    quote = svc.quote(branch.id, [{"product_id": product.id, "quantity": 2}], discount=500)

    assert quote.subtotal == 20000
    assert quote.tax == 2200
    assert quote.total == 21700
    assert repo.get_product(product.id).stock == 5
