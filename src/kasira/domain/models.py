from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional

ROLE_OWNER = "owner"
ROLE_CASHIER = "cashier"

METHOD_CASH = "CASH"
METHOD_TRANSFER = "TRANSFER"
METHOD_QRIS = "QRIS"
PAYMENT_METHODS = (METHOD_CASH, METHOD_TRANSFER, METHOD_QRIS)

STATUS_PENDING = "pending"
STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"
STATUS_EXPIRED = "expired"
TERMINAL_STATUSES = (STATUS_SUCCESS, STATUS_FAILED, STATUS_EXPIRED)

BANKS = ("BCA", "BNI", "BRI", "MANDIRI", "CIMB", "PERMATA")

SHARED_CATEGORY = "all"


@dataclass(frozen=True)
class Branch:
    id: str
    name: str
    location: str
    owner_id: str


@dataclass(frozen=True)
class Product:
    id: str
    name: str
    category: str
    branch_id: str
    price: float
    cost_price: float
    stock: int
    image_url: str = ""


@dataclass(frozen=True)
class Category:
    id: str
    name: str
    branch_id: str = SHARED_CATEGORY


@dataclass(frozen=True)
class User:
    id: str
    name: str
    email: str
    role: str
    branch_id: Optional[str] = None
    business_name: Optional[str] = None
    package_type: Optional[str] = None
    status: Optional[str] = None
    expired_at: Optional[str] = None


@dataclass(frozen=True)
class TransactionItem:
    product_id: str
    name: str
    quantity: int
    price_snapshot: float
    cost_snapshot: float

    @property
    def line_total(self) -> float:
        return self.price_snapshot * self.quantity

    @property
    def line_cost(self) -> float:
        return self.cost_snapshot * self.quantity


@dataclass(frozen=True)
class PaymentDetails:
    bank: Optional[str] = None
    va_number: Optional[str] = None
    qris_url: Optional[str] = None
    gateway_order_id: Optional[str] = None


@dataclass(frozen=True)
class Transaction:
    id: str
    branch_id: str
    cashier_id: str
    items: tuple[TransactionItem, ...]
    subtotal: float
    discount: float
    tax: float
    total: float
    payment_method: str
    status: str
    created_at: str
    payment_details: PaymentDetails = field(default_factory=PaymentDetails)

    @property
    def cogs(self) -> float:
        return sum(it.line_cost for it in self.items)


@dataclass(frozen=True)
class PaymentRecord:
    order_id: str
    amount: float
    payment_type: str
    status: str
    bank: Optional[str] = None
    va_number: Optional[str] = None
    qris_url: Optional[str] = None
    user_id: Optional[str] = None


@dataclass(frozen=True)
class FinancialStats:
    revenue: float = 0.0
    cogs: float = 0.0
    gross_profit: float = 0.0
    net_profit: float = 0.0
    total_discount: float = 0.0
    total_tax: float = 0.0
    order_count: int = 0


@dataclass(frozen=True)
class BranchPerformance(FinancialStats):
    branch_id: str = ""
    branch_name: str = ""
    best_seller: str = "N/A"
    trend: str = "stable"


@dataclass(frozen=True)
class DailyPoint:
    day: str
    revenue: float
    profit: float


@dataclass(frozen=True)
class CartQuote:
    subtotal: float
    tax: float
    discount: float
    total: float
