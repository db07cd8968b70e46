from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Callable, Iterable, Mapping, Optional
import logging

from kasira.domain.errors import (
    NotFoundError,
    OutOfStockError,
    ProductNotFoundError,
    UnauthorizedBranchError,
    ValidationError,
)
from kasira.domain.models import (
    Branch,
    CartQuote,
    METHOD_CASH,
    Product,
    ROLE_CASHIER,
    STATUS_PENDING,
    STATUS_SUCCESS,
    Transaction,
    TransactionItem,
    User,
)
from kasira.repositories.unit_of_work import RepositoryUnitOfWork, UnitOfWork
from kasira.services.account_service import require_action
from kasira.services.notifier import STOCK_CHANGED, TRANSACTION_CREATED, branch_channel, owner_channel
from kasira.services.payment_service import PaymentInitiator, default_initiators, initiator_for

log = logging.getLogger("kasira.transactions")


def _non_negative(value: Optional[float], label: str) -> float:
    amount = float(value or 0)
    if amount < 0:
        raise ValidationError(f"{label} must be >= 0.")
    return amount


class TransactionService:
    def __init__(
        self,
        repo,
        notifier,
        initiators: Mapping[str, PaymentInitiator] | None = None,
        uow_factory: Callable[[], UnitOfWork] | None = None,
        clock: Callable[[], datetime] | None = None,
        tax_rate: float = 0.11,
    ):
        self.repo = repo
        self.notifier = notifier
        self.initiators = initiators or default_initiators()
        self.uow_factory = uow_factory or (lambda: RepositoryUnitOfWork(repo))
        self.clock = clock or datetime.now
        self.tax_rate = tax_rate

    def _resolve_lines(self, branch_id: str, lines: Iterable[dict]) -> list[tuple[Product, int]]:
        """
        lines: [{product_id, quantity}]

        Quantities of repeated products are summed before comparing with stock.
        """
        lines = list(lines)
        if not lines:
            raise ValidationError("Cart is empty.")

        qty_by_product: Counter[str] = Counter()
        resolved: list[tuple[Product, int]] = []
        for it in lines:
            try:
                qty = int(it["quantity"])
                product_id = str(it["product_id"])
            except (KeyError, TypeError, ValueError) as e:
                raise ValidationError(f"Malformed cart line: {it!r}") from e
            if qty <= 0:
                raise ValidationError("Quantity must be >= 1.")

            product = self.repo.get_product(product_id)
            if not product:
                raise ProductNotFoundError(f"Product {product_id} not found.")
            if product.branch_id != branch_id:
                raise UnauthorizedBranchError(f"Product {product.name} does not belong to branch {branch_id}.")

            qty_by_product[product_id] += qty
            if qty_by_product[product_id] > int(product.stock):
                raise OutOfStockError(f"Insufficient stock for {product.name}. Available: {product.stock}")
            resolved.append((product, qty))
        return resolved

    def _check_cashier(self, cashier: User, branch: Branch) -> None:
        require_action(cashier, "create_transaction")
        if cashier.role == ROLE_CASHIER:
            allowed = cashier.branch_id == branch.id
        else:
            allowed = branch.owner_id == cashier.id
        if not allowed:
            raise UnauthorizedBranchError(f"User {cashier.id} cannot sell at branch {branch.id}.")

    def quote(
        self,
        branch_id: str,
        lines: Iterable[dict],
        tax_rate: Optional[float] = None,
        discount: float = 0,
    ) -> CartQuote:
        """Price a cart at current prices without touching stock."""
        resolved = self._resolve_lines(branch_id, lines)
        rate = self.tax_rate if tax_rate is None else float(tax_rate)
        disc = _non_negative(discount, "Discount")
        subtotal = sum(p.price * qty for p, qty in resolved)
        tax = round(subtotal * rate, 2)
        return CartQuote(subtotal=subtotal, tax=tax, discount=disc, total=subtotal + tax - disc)

    def create_transaction(
        self,
        branch_id: str,
        cashier_id: str,
        lines: Iterable[dict],
        payment_method: str,
        bank: Optional[str] = None,
        tax: float = 0,
        discount: float = 0,
    ) -> Transaction:
        branch = self.repo.get_branch(branch_id)
        if not branch:
            raise NotFoundError("Branch not found.")
        cashier = self.repo.get_user(cashier_id)
        if not cashier:
            raise NotFoundError("Cashier not found.")
        self._check_cashier(cashier, branch)

        initiator = initiator_for(payment_method, self.initiators)
        tax_amount = _non_negative(tax, "Tax")
        discount_amount = _non_negative(discount, "Discount")

        items = tuple(
            TransactionItem(
                product_id=p.id,
                name=p.name,
                quantity=qty,
                price_snapshot=float(p.price),
                cost_snapshot=float(p.cost_price),
            )
            for p, qty in self._resolve_lines(branch.id, lines)
        )
        subtotal = sum(it.line_total for it in items)
        if discount_amount > subtotal + tax_amount:
            raise ValidationError("Discount cannot exceed subtotal plus tax.")
        total = subtotal + tax_amount - discount_amount

        tx_id = self.repo.new_id("TX")
        details = initiator.initiate(total, tx_id, bank)
        tx = Transaction(
            id=tx_id,
            branch_id=branch.id,
            cashier_id=cashier.id,
            items=items,
            subtotal=subtotal,
            discount=discount_amount,
            tax=tax_amount,
            total=total,
            payment_method=initiator.method,
            status=STATUS_SUCCESS if initiator.method == METHOD_CASH else STATUS_PENDING,
            created_at=self.clock().replace(microsecond=0).isoformat(sep=" "),
            payment_details=details,
        )

        with self.uow_factory() as uow:
            uow.create_transaction(tx)
        log.info(
            "transaction_created tx=%s branch=%s items=%s total=%.2f method=%s status=%s cashier=%s",
            tx.id, tx.branch_id, len(items), tx.total, tx.payment_method, tx.status, tx.cashier_id,
        )

        self.notifier.publish(
            branch_channel(branch.id),
            STOCK_CHANGED,
            {"transaction_id": tx.id, "product_ids": [it.product_id for it in items]},
        )
        if tx.status == STATUS_SUCCESS:
            self.notifier.publish(owner_channel(branch.owner_id), TRANSACTION_CREATED, tx)
        return tx

    def get_transaction(self, transaction_id: str) -> Transaction:
        tx = self.repo.get_transaction(transaction_id)
        if not tx:
            raise NotFoundError("Transaction not found.")
        return tx

    def list_transactions(self, branch_id: Optional[str] = None) -> list[Transaction]:
        return self.repo.list_transactions([branch_id] if branch_id else None)
