from .account_service import AccountService
from .catalog_service import CatalogService
from .insight_service import InsightService
from .notifier import EventNotifier
from .reporting_service import ReportingService
from .settlement_service import SettlementService
from .transaction_service import TransactionService

__all__ = [
    "AccountService",
    "CatalogService",
    "InsightService",
    "EventNotifier",
    "ReportingService",
    "SettlementService",
    "TransactionService",
]
