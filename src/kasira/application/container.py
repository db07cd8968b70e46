from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from kasira.config import Settings
from kasira.repositories.sqlite_repo import SqliteRepository
from kasira.services.account_service import AccountService
from kasira.services.catalog_service import CatalogService
from kasira.services.insight_service import InsightService
from kasira.services.notifier import EventNotifier
from kasira.services.payment_service import default_initiators
from kasira.services.reporting_service import ReportingService
from kasira.services.settlement_service import SettlementService
from kasira.services.transaction_service import TransactionService


@dataclass(frozen=True)
class AppContainer:
    settings: Settings
    repo: SqliteRepository
    notifier: EventNotifier
    accounts: AccountService
    catalog: CatalogService
    transactions: TransactionService
    settlement: SettlementService
    reporting: ReportingService
    insights: InsightService


def build_container(db_path: Path | str, settings: Settings | None = None) -> AppContainer:
    settings = settings or Settings()
    repo = SqliteRepository(db_path)
    repo.init_db()

    notifier = EventNotifier()
    accounts = AccountService(repo)
    catalog = CatalogService(repo, notifier, low_stock_threshold=settings.low_stock_threshold)
    transactions = TransactionService(
        repo,
        notifier,
        initiators=default_initiators(settings.default_bank),
        tax_rate=settings.tax_rate,
    )
    settlement = SettlementService(repo, notifier, expiry_minutes=settings.payment_expiry_minutes)
    reporting = ReportingService(repo, trend_threshold=settings.trend_threshold)
    insights = InsightService(settings.insight_api_key, settings.insight_model, settings.insight_url)

    return AppContainer(
        settings=settings,
        repo=repo,
        notifier=notifier,
        accounts=accounts,
        catalog=catalog,
        transactions=transactions,
        settlement=settlement,
        reporting=reporting,
        insights=insights,
    )
