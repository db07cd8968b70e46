"""Financial aggregation over the transaction log.

Every figure is recomputed from transactions on demand; nothing here is
cached or persisted, so reports cannot drift from the records they summarize.
Only ``success`` transactions count. Tax is a pass-through liability and is
reported but never added to profit.
"""
from __future__ import annotations

import csv
from collections import defaultdict
from dataclasses import asdict
from datetime import date, datetime, time, timedelta
from pathlib import Path
from typing import Iterable, Optional, Sequence, Union

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo

from kasira.domain.errors import UnauthorizedBranchError, ValidationError
from kasira.domain.models import (
    Branch,
    BranchPerformance,
    DailyPoint,
    FinancialStats,
    STATUS_SUCCESS,
    Transaction,
)

DateLike = Union[str, date, datetime, None]

TREND_UP = "up"
TREND_DOWN = "down"
TREND_STABLE = "stable"

CSV_HEADER = ["Invoice", "Date", "Revenue", "COGS", "Discount", "NetProfit", "Tax"]


def as_datetime(value: DateLike, *, end: bool = False) -> Optional[datetime]:
    """Normalize a bound; date-only values cover the whole day."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return datetime.combine(value, time.max if end else time.min)
    else:
        text = str(value).strip()
        try:
            if len(text) == 10:
                return datetime.combine(date.fromisoformat(text), time.max if end else time.min)
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            parsed = datetime.fromisoformat(text)
        except ValueError as e:
            raise ValidationError(f"Invalid date '{value}'.") from e
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def filter_transactions(
    transactions: Iterable[Transaction],
    branch_id: Optional[str] = None,
    start: DateLike = None,
    end: DateLike = None,
    status: Optional[str] = STATUS_SUCCESS,
) -> list[Transaction]:
    start_dt = as_datetime(start)
    end_dt = as_datetime(end, end=True)
    out: list[Transaction] = []
    for tx in transactions:
        if status is not None and tx.status != status:
            continue
        if branch_id not in (None, "all") and tx.branch_id != branch_id:
            continue
        created = datetime.fromisoformat(tx.created_at)
        if start_dt is not None and created < start_dt:
            continue
        if end_dt is not None and created > end_dt:
            continue
        out.append(tx)
    return out


def compute_stats(transactions: Iterable[Transaction]) -> FinancialStats:
    revenue = 0.0
    cogs = 0.0
    discount = 0.0
    tax = 0.0
    count = 0
    for tx in transactions:
        if tx.status != STATUS_SUCCESS:
            continue
        revenue += tx.subtotal
        cogs += tx.cogs
        discount += tx.discount
        tax += tx.tax
        count += 1

    gross = revenue - cogs
    return FinancialStats(
        revenue=revenue,
        cogs=cogs,
        gross_profit=gross,
        net_profit=gross - discount,
        total_discount=discount,
        total_tax=tax,
        order_count=count,
    )


def best_seller(transactions: Iterable[Transaction]) -> str:
    """Product with the highest quantity sold; ties go to the alphabetically first name."""
    sold: dict[str, int] = defaultdict(int)
    for tx in transactions:
        if tx.status != STATUS_SUCCESS:
            continue
        for it in tx.items:
            sold[it.name] += it.quantity
    if not sold:
        return "N/A"
    name, _qty = min(sold.items(), key=lambda kv: (-kv[1], kv[0]))
    return name


def classify_trend(current: float, previous: float, threshold: float = 0.02) -> str:
    if previous == 0:
        if current > 0:
            return TREND_UP
        if current < 0:
            return TREND_DOWN
        return TREND_STABLE
    change = (current - previous) / abs(previous)
    if change > threshold:
        return TREND_UP
    if change < -threshold:
        return TREND_DOWN
    return TREND_STABLE


def previous_window(start: datetime, end: datetime) -> tuple[datetime, datetime]:
    """The window of equal length ending just before ``start``."""
    prev_end = start - timedelta(microseconds=1)
    return prev_end - (end - start), prev_end


def compare_branches(
    branches: Sequence[Branch],
    transactions: Sequence[Transaction],
    start: DateLike = None,
    end: DateLike = None,
    threshold: float = 0.02,
) -> list[BranchPerformance]:
    start_dt = as_datetime(start)
    end_dt = as_datetime(end, end=True)
    window = previous_window(start_dt, end_dt) if start_dt and end_dt else None

    rows: list[BranchPerformance] = []
    for branch in branches:
        current = filter_transactions(transactions, branch.id, start_dt, end_dt)
        stats = compute_stats(current)
        trend = TREND_STABLE
        if window is not None:
            before = compute_stats(filter_transactions(transactions, branch.id, window[0], window[1]))
            trend = classify_trend(stats.net_profit, before.net_profit, threshold)
        rows.append(
            BranchPerformance(
                **asdict(stats),
                branch_id=branch.id,
                branch_name=branch.name,
                best_seller=best_seller(current),
                trend=trend,
            )
        )
    return rows


def daily_series(transactions: Iterable[Transaction]) -> list[DailyPoint]:
    revenue: dict[str, float] = defaultdict(float)
    profit: dict[str, float] = defaultdict(float)
    for tx in transactions:
        if tx.status != STATUS_SUCCESS:
            continue
        day = tx.created_at[:10]
        revenue[day] += tx.subtotal
        profit[day] += tx.subtotal - tx.cogs - tx.discount
    return [DailyPoint(day=d, revenue=revenue[d], profit=profit[d]) for d in sorted(revenue)]


class ReportingService:
    def __init__(self, repo, trend_threshold: float = 0.02):
        self.repo = repo
        self.trend_threshold = trend_threshold

    def _owner_branch_ids(self, owner_id: str, branch_id: Optional[str]) -> list[str]:
        owned = [b.id for b in self.repo.list_branches(owner_id)]
        if branch_id in (None, "all"):
            return owned
        if branch_id not in owned:
            raise UnauthorizedBranchError("Branch belongs to another owner.")
        return [branch_id]

    def financial_report(
        self,
        owner_id: str,
        branch_id: Optional[str] = None,
        start: DateLike = None,
        end: DateLike = None,
    ) -> tuple[list[Transaction], FinancialStats]:
        """Successful transactions in the window, newest first, with their stats."""
        branch_ids = self._owner_branch_ids(owner_id, branch_id)
        txs = filter_transactions(self.repo.list_transactions(branch_ids), None, start, end)
        return list(reversed(txs)), compute_stats(txs)

    def daily_report(
        self,
        owner_id: str,
        branch_id: Optional[str] = None,
        start: DateLike = None,
        end: DateLike = None,
    ) -> list[DailyPoint]:
        txs, _stats = self.financial_report(owner_id, branch_id, start, end)
        return daily_series(txs)

    def branch_comparison(self, owner_id: str, start: DateLike = None, end: DateLike = None) -> list[BranchPerformance]:
        branches = self.repo.list_branches(owner_id)
        txs = self.repo.list_transactions([b.id for b in branches], status=STATUS_SUCCESS)
        return compare_branches(branches, txs, start, end, self.trend_threshold)

    def export_csv(self, path: Union[str, Path], transactions: Iterable[Transaction]) -> int:
        written = 0
        with open(path, "w", newline="", encoding="utf-8") as fh:
            writer = csv.writer(fh)
            writer.writerow(CSV_HEADER)
            for tx in transactions:
                if tx.status != STATUS_SUCCESS:
                    continue
                cogs = tx.cogs
                writer.writerow([
                    tx.id,
                    tx.created_at,
                    f"{tx.subtotal:.2f}",
                    f"{cogs:.2f}",
                    f"{tx.discount:.2f}",
                    f"{tx.subtotal - cogs - tx.discount:.2f}",
                    f"{tx.tax:.2f}",
                ])
                written += 1
        return written

    def export_excel(self, path: Union[str, Path], owner_id: str, start: DateLike = None, end: DateLike = None) -> None:
        wb = Workbook()

        def money(cell):
            cell.number_format = "#,##0.00"

        def bold_row(ws, r):
            for c in ws[r]:
                c.font = Font(bold=True)

        def set_widths(ws, widths: dict[str, int]):
            for col, w in widths.items():
                ws.column_dimensions[col].width = w

        def add_table(ws, name: str, end_row: int, end_col: int):
            ref = f"A1:{get_column_letter(end_col)}{end_row}"
            tab = Table(displayName=name, ref=ref)
            tab.tableStyleInfo = TableStyleInfo(
                name="TableStyleMedium9",
                showRowStripes=True,
                showColumnStripes=False,
            )
            ws.add_table(tab)

        txs, stats = self.financial_report(owner_id, None, start, end)
        comparison = self.branch_comparison(owner_id, start, end)

        # -------- 1) Summary --------
        ws = wb.active
        ws.title = "Summary"
        ws["A1"] = "Summary"
        ws["A1"].font = Font(bold=True, size=14)

        ws["A3"] = "Window"
        ws["B3"] = f"{start or '-'}  ->  {end or '-'}"

        rows = [
            ("Orders", stats.order_count, False),
            ("Revenue", stats.revenue, True),
            ("COGS", stats.cogs, True),
            ("Gross Profit", stats.gross_profit, True),
            ("Discounts", stats.total_discount, True),
            ("Net Profit", stats.net_profit, True),
            ("Tax (liability)", stats.total_tax, True),
        ]
        for i, (label, val, is_money) in enumerate(rows):
            r = 5 + i
            ws[f"A{r}"] = label
            ws[f"B{r}"] = val
            if is_money:
                money(ws[f"B{r}"])
        set_widths(ws, {"A": 24, "B": 34})

        # -------- 2) Transactions --------
        ws2 = wb.create_sheet("Transactions")
        ws2.append(CSV_HEADER + ["Branch", "Method"])
        bold_row(ws2, 1)
        for tx in txs:
            ws2.append([
                tx.id, tx.created_at, tx.subtotal, tx.cogs, tx.discount,
                tx.subtotal - tx.cogs - tx.discount, tx.tax, tx.branch_id, tx.payment_method,
            ])
            for col in "CDEFG":
                money(ws2[f"{col}{ws2.max_row}"])
        ws2.freeze_panes = "A2"
        set_widths(ws2, {"A": 18, "B": 22, "C": 16, "D": 16, "E": 14, "F": 16, "G": 14, "H": 18, "I": 12})
        if ws2.max_row >= 2:
            add_table(ws2, "TransactionsDetail", ws2.max_row, 9)

        # -------- 3) Branches --------
        ws3 = wb.create_sheet("Branches")
        ws3.append(["Branch", "Orders", "Revenue", "COGS", "Net Profit", "Best Seller", "Trend"])
        bold_row(ws3, 1)
        for row in comparison:
            ws3.append([
                row.branch_name, row.order_count, row.revenue, row.cogs, row.net_profit, row.best_seller, row.trend,
            ])
            for col in "CDE":
                money(ws3[f"{col}{ws3.max_row}"])
        set_widths(ws3, {"A": 26, "B": 10, "C": 16, "D": 16, "E": 16, "F": 28, "G": 10})
        if ws3.max_row >= 2:
            add_table(ws3, "BranchComparison", ws3.max_row, 7)

        wb.save(path)
