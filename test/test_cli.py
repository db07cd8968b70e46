from pathlib import Path

import pytest

from conftest import RecordingNotifier, seed_store

from kasira.domain.models import Branch, Product, User
from kasira.main import main
from kasira.repositories.sqlite_repo import SqliteRepository
from kasira.services.transaction_service import TransactionService


@pytest.fixture
def store(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("KASIRA_HOME", str(tmp_path / "home"))
    db = tmp_path / "cli.db"
    repo = SqliteRepository(db)
    repo.init_db()
    _owner, branch, cashier, product = seed_store(repo, stock=4)
    TransactionService(repo, RecordingNotifier()).create_transaction(
        branch.id, cashier.id, [{"product_id": product.id, "quantity": 2}], "CASH"
    )
    return db


def test_report_prints_totals(store, capsys):
    code = main(["--db", str(store), "report", "--owner", "owner@kasira.test", "--daily"])

    out = capsys.readouterr().out
    assert code == 0
    assert "Orders:        1" in out
    assert "20,000.00" in out
    assert "profit=8,000.00" in out


def test_compare_lists_branch(store, capsys):
    assert main(["--db", str(store), "compare", "--owner", "owner@kasira.test"]) == 0
    out = capsys.readouterr().out
    assert "Cabang A" in out
    assert "best=Kopi Susu" in out


def test_export_csv_writes_file(store, tmp_path: Path, capsys):
    target = tmp_path / "out.csv"

    assert main(["--db", str(store), "export-csv", "--owner", "owner@kasira.test", "--output", str(target)]) == 0
    assert target.read_text(encoding="utf-8").splitlines()[0] == "Invoice,Date,Revenue,COGS,Discount,NetProfit,Tax"


def test_low_stock_uses_threshold(store, capsys):
    assert main(["--db", str(store), "low-stock", "--owner", "owner@kasira.test", "--threshold", "5"]) == 0
    assert "PRD-1" in capsys.readouterr().out


def test_cashier_cannot_read_reports(store, capsys):
    code = main(["--db", str(store), "report", "--owner", "kasir@kasira.test"])

    assert code == 1
    assert "not allowed" in capsys.readouterr().err


def test_unknown_owner_is_an_error(store, capsys):
    assert main(["--db", str(store), "report", "--owner", "ghost@kasira.test"]) == 1
    assert "Unknown account" in capsys.readouterr().err


def test_low_stock_only_lists_own_branches(store, capsys):
    repo = SqliteRepository(store)
    other = repo.create_user(User(id="USR-LAIN", name="Sari", email="sari@kasira.test", role="owner", status="active"))
    repo.create_branch(Branch(id="BR-LAIN", name="Toko Sari", location="Depok", owner_id=other.id))
    repo.create_product(
        Product(id="PRD-LAIN", name="Gula", category="Makanan", branch_id="BR-LAIN", price=15000, cost_price=9000, stock=1)
    )

    assert main(["--db", str(store), "low-stock", "--owner", "owner@kasira.test"]) == 0
    out = capsys.readouterr().out
    assert "PRD-1" in out
    assert "PRD-LAIN" not in out

    assert main(["--db", str(store), "low-stock", "--owner", "owner@kasira.test", "--branch", "BR-LAIN"]) == 1
    assert "another owner" in capsys.readouterr().err


def test_malformed_start_date_is_reported_not_raised(store, capsys):
    code = main(["--db", str(store), "report", "--owner", "owner@kasira.test", "--start", "2026-13-40"])

    assert code == 1
    assert "Invalid date '2026-13-40'" in capsys.readouterr().err


def test_owner_with_lapsed_subscription_is_refused(store, capsys):
    SqliteRepository(store).create_user(
        User(
            id="USR-EXP",
            name="Lama",
            email="lama@kasira.test",
            role="owner",
            status="active",
            expired_at="2020-01-01 00:00:00",
        )
    )

    code = main(["--db", str(store), "report", "--owner", "lama@kasira.test"])

    captured = capsys.readouterr()
    assert code == 1
    assert "Subscription expired" in captured.err
    assert "Orders:" not in captured.out
    assert SqliteRepository(store).get_user("USR-EXP").status == "expired"
