from .models import Branch, Product, Category, User, Transaction, TransactionItem, FinancialStats, BranchPerformance
from .errors import (
    AlreadySettledError,
    NotFoundError,
    OutOfStockError,
    ProductNotFoundError,
    UnauthorizedBranchError,
    UnauthorizedError,
    UpstreamUnavailableError,
    ValidationError,
)

__all__ = [
    "Branch",
    "Product",
    "Category",
    "User",
    "Transaction",
    "TransactionItem",
    "FinancialStats",
    "BranchPerformance",
    "AlreadySettledError",
    "NotFoundError",
    "OutOfStockError",
    "ProductNotFoundError",
    "UnauthorizedBranchError",
    "UnauthorizedError",
    "UpstreamUnavailableError",
    "ValidationError",
]
