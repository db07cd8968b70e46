from __future__ import annotations

import json
import secrets
import shutil
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from kasira.domain.errors import OutOfStockError
from kasira.domain.models import (
    Branch,
    Category,
    PaymentDetails,
    PaymentRecord,
    Product,
    SHARED_CATEGORY,
    STATUS_PENDING,
    Transaction,
    TransactionItem,
    User,
)

_PRODUCT_COLUMNS = "id, name, category, branch_id, price, cost_price, stock, image_url"
_USER_COLUMNS = "id, name, email, role, branch_id, business_name, package_type, status, expired_at"
_TX_COLUMNS = (
    "id, branch_id, cashier_id, subtotal, discount, tax, total, payment_method, status, created_at, "
    "bank, va_number, qris_url, gateway_order_id"
)
_PAYMENT_COLUMNS = "order_id, amount, payment_type, status, bank, va_number, qris_url, user_id"

DEFAULT_CATEGORIES = (("CAT-DEFAULT-1", "Makanan"), ("CAT-DEFAULT-2", "Minuman"))


def _product(r) -> Product:
    return Product(
        id=str(r[0]),
        name=str(r[1]),
        category=str(r[2]),
        branch_id=str(r[3]),
        price=float(r[4]),
        cost_price=float(r[5]),
        stock=int(r[6]),
        image_url=str(r[7] or ""),
    )


def _user(r) -> User:
    return User(
        id=str(r[0]),
        name=str(r[1]),
        email=str(r[2]),
        role=str(r[3]),
        branch_id=r[4],
        business_name=r[5],
        package_type=r[6],
        status=r[7],
        expired_at=r[8],
    )


def _payment(r) -> PaymentRecord:
    return PaymentRecord(
        order_id=str(r[0]),
        amount=float(r[1]),
        payment_type=str(r[2]),
        status=str(r[3]),
        bank=r[4],
        va_number=r[5],
        qris_url=r[6],
        user_id=r[7],
    )


class SqliteRepository:
    def __init__(self, db_path: Path | str):
        self.db_path = str(db_path)

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=10)
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    @staticmethod
    def new_id(prefix: str) -> str:
        return f"{prefix}-{secrets.token_hex(5).upper()}"

    def init_db(self) -> None:
        self.run_migrations()

    def _migrations(self):
        return [
            (1, self._migration_v1_base),
            (2, self._migration_v2_registrations_and_settlement),
        ]

    def run_migrations(self) -> None:
        """Apply pending schema versions in one transaction; the file is copied aside first."""
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute("CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)")
            conn.commit()
            cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
            current_version = int(cur.fetchone()[0])
        finally:
            conn.close()

        pending = [(v, step) for v, step in self._migrations() if v > current_version]
        if not pending:
            return

        backup_path = self._create_pre_migration_backup() if current_version else None
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN")
            for version, step in pending:
                step(cur)
                cur.execute(
                    "INSERT INTO schema_migrations (version, applied_at) VALUES (?, datetime('now'))",
                    (version,),
                )
            conn.commit()
        except Exception as exc:
            conn.rollback()
            self._restore_pre_migration_backup(backup_path)
            raise RuntimeError(f"Schema migration to v{pending[-1][0]} failed; database file restored.") from exc
        finally:
            conn.close()

    def _create_pre_migration_backup(self) -> Path | None:
        db_file = Path(self.db_path)
        if not db_file.exists() or db_file.stat().st_size == 0:
            return None
        backup_file = db_file.with_name(f"{db_file.stem}.pre_migration_{datetime.now().strftime('%Y%m%d%H%M%S')}.bak")
        shutil.copy2(db_file, backup_file)
        return backup_file

    def _restore_pre_migration_backup(self, backup_path: Path | None) -> None:
        if backup_path is None or not backup_path.exists():
            return
        shutil.copy2(backup_path, self.db_path)

    def _migration_v1_base(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS branches (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            location TEXT NOT NULL DEFAULT '',
            owner_id TEXT NOT NULL
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS categories (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            branch_id TEXT NOT NULL DEFAULT 'all'
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS products (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            category TEXT NOT NULL DEFAULT '',
            branch_id TEXT NOT NULL,
            price REAL NOT NULL CHECK(price > 0),
            cost_price REAL NOT NULL CHECK(cost_price >= 0),
            stock INTEGER NOT NULL DEFAULT 0 CHECK(stock >= 0),
            image_url TEXT NOT NULL DEFAULT '',
            FOREIGN KEY(branch_id) REFERENCES branches(id) ON DELETE CASCADE
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS users (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            email TEXT NOT NULL UNIQUE,
            role TEXT NOT NULL CHECK(role IN ('owner','cashier')),
            branch_id TEXT,
            business_name TEXT,
            package_type TEXT,
            status TEXT,
            expired_at TEXT,
            created_at TEXT NOT NULL DEFAULT (datetime('now'))
        )
        """
        )

        # branch_id / product_id are weak references: history survives deletes.
        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS transactions (
            id TEXT PRIMARY KEY,
            branch_id TEXT NOT NULL,
            cashier_id TEXT NOT NULL,
            subtotal REAL NOT NULL,
            discount REAL NOT NULL DEFAULT 0 CHECK(discount >= 0),
            tax REAL NOT NULL DEFAULT 0 CHECK(tax >= 0),
            total REAL NOT NULL,
            payment_method TEXT NOT NULL CHECK(payment_method IN ('CASH','TRANSFER','QRIS')),
            status TEXT NOT NULL CHECK(status IN ('pending','success','failed','expired')),
            created_at TEXT NOT NULL,
            bank TEXT,
            va_number TEXT,
            qris_url TEXT,
            gateway_order_id TEXT
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS transaction_items (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            transaction_id TEXT NOT NULL,
            position INTEGER NOT NULL,
            product_id TEXT NOT NULL,
            name TEXT NOT NULL,
            quantity INTEGER NOT NULL CHECK(quantity > 0),
            price_snapshot REAL NOT NULL,
            cost_snapshot REAL NOT NULL,
            FOREIGN KEY(transaction_id) REFERENCES transactions(id) ON DELETE CASCADE
        )
        """
        )

        for cat_id, name in DEFAULT_CATEGORIES:
            cur.execute(
                "INSERT OR IGNORE INTO categories (id, name, branch_id) VALUES (?, ?, ?)",
                (cat_id, name, SHARED_CATEGORY),
            )

    def _migration_v2_registrations_and_settlement(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS registration_payments (
                order_id TEXT PRIMARY KEY,
                amount REAL NOT NULL CHECK(amount > 0),
                payment_type TEXT NOT NULL CHECK(payment_type IN ('va','qris')),
                status TEXT NOT NULL CHECK(status IN ('pending','paid','failed')),
                bank TEXT,
                va_number TEXT,
                qris_url TEXT,
                user_id TEXT,
                pending_payload TEXT,
                created_at TEXT NOT NULL DEFAULT (datetime('now'))
            )
            """
        )
        self._add_column_if_missing(cur, "transactions", "settled_at", "TEXT")
        cur.execute("CREATE INDEX IF NOT EXISTS ix_transactions_branch_created ON transactions(branch_id, created_at)")
        cur.execute("CREATE INDEX IF NOT EXISTS ix_transaction_items_tx ON transaction_items(transaction_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS ix_products_branch ON products(branch_id)")

    def _add_column_if_missing(self, cur: sqlite3.Cursor, table: str, column: str, definition: str) -> None:
        cur.execute(f"PRAGMA table_info({table})")
        cols = {str(r[1]) for r in cur.fetchall()}
        if column in cols:
            return
        cur.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")

    # ---------- Branches ----------
    def create_branch(self, branch: Branch) -> Branch:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            "INSERT INTO branches (id, name, location, owner_id) VALUES (?, ?, ?, ?)",
            (branch.id, branch.name, branch.location, branch.owner_id),
        )
        conn.commit()
        conn.close()
        return branch

    def get_branch(self, branch_id: str) -> Optional[Branch]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT id, name, location, owner_id FROM branches WHERE id=?", (branch_id,))
        r = cur.fetchone()
        conn.close()
        if not r:
            return None
        return Branch(id=str(r[0]), name=str(r[1]), location=str(r[2]), owner_id=str(r[3]))

    def list_branches(self, owner_id: Optional[str] = None) -> list[Branch]:
        conn = self._conn()
        cur = conn.cursor()
        if owner_id is None:
            cur.execute("SELECT id, name, location, owner_id FROM branches ORDER BY rowid")
        else:
            cur.execute("SELECT id, name, location, owner_id FROM branches WHERE owner_id=? ORDER BY rowid", (owner_id,))
        rows = cur.fetchall()
        conn.close()
        return [Branch(id=str(r[0]), name=str(r[1]), location=str(r[2]), owner_id=str(r[3])) for r in rows]

    def update_branch(self, branch_id: str, name: str, location: str) -> bool:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("UPDATE branches SET name=?, location=? WHERE id=?", (name, location, branch_id))
        changed = cur.rowcount > 0
        conn.commit()
        conn.close()
        return changed

    def delete_branch_cascade(self, branch_id: str) -> bool:
        conn = self._conn()
        cur = conn.cursor()
        try:
            cur.execute("BEGIN IMMEDIATE")
            cur.execute("DELETE FROM products WHERE branch_id=?", (branch_id,))
            cur.execute("DELETE FROM categories WHERE branch_id=?", (branch_id,))
            cur.execute("DELETE FROM users WHERE role='cashier' AND branch_id=?", (branch_id,))
            cur.execute("DELETE FROM branches WHERE id=?", (branch_id,))
            removed = cur.rowcount > 0
            conn.commit()
            return removed
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # ---------- Categories ----------
    def create_category(self, category: Category) -> Category:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            "INSERT INTO categories (id, name, branch_id) VALUES (?, ?, ?)",
            (category.id, category.name, category.branch_id),
        )
        conn.commit()
        conn.close()
        return category

    def list_categories(self, branch_id: Optional[str] = None) -> list[Category]:
        conn = self._conn()
        cur = conn.cursor()
        if branch_id is None:
            cur.execute("SELECT id, name, branch_id FROM categories ORDER BY rowid")
        else:
            cur.execute(
                "SELECT id, name, branch_id FROM categories WHERE branch_id IN (?, ?) ORDER BY rowid",
                (branch_id, SHARED_CATEGORY),
            )
        rows = cur.fetchall()
        conn.close()
        return [Category(id=str(r[0]), name=str(r[1]), branch_id=str(r[2])) for r in rows]

    def delete_category(self, category_id: str) -> bool:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("DELETE FROM categories WHERE id=?", (category_id,))
        changed = cur.rowcount > 0
        conn.commit()
        conn.close()
        return changed

    # ---------- Products ----------
    def create_product(self, product: Product) -> Product:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            f"INSERT INTO products ({_PRODUCT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                product.id,
                product.name,
                product.category,
                product.branch_id,
                float(product.price),
                float(product.cost_price),
                int(product.stock),
                product.image_url,
            ),
        )
        conn.commit()
        conn.close()
        return product

    def get_product(self, product_id: str) -> Optional[Product]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {_PRODUCT_COLUMNS} FROM products WHERE id=?", (product_id,))
        r = cur.fetchone()
        conn.close()
        return _product(r) if r else None

    def list_products(self, branch_id: Optional[str] = None) -> list[Product]:
        conn = self._conn()
        cur = conn.cursor()
        if branch_id is None:
            cur.execute(f"SELECT {_PRODUCT_COLUMNS} FROM products ORDER BY name")
        else:
            cur.execute(f"SELECT {_PRODUCT_COLUMNS} FROM products WHERE branch_id=? ORDER BY name", (branch_id,))
        rows = cur.fetchall()
        conn.close()
        return [_product(r) for r in rows]

    def list_low_stock(self, branch_id: Optional[str], threshold: int) -> list[Product]:
        conn = self._conn()
        cur = conn.cursor()
        if branch_id is None:
            cur.execute(
                f"SELECT {_PRODUCT_COLUMNS} FROM products WHERE stock < ? ORDER BY stock ASC, name ASC",
                (int(threshold),),
            )
        else:
            cur.execute(
                f"SELECT {_PRODUCT_COLUMNS} FROM products WHERE branch_id=? AND stock < ? ORDER BY stock ASC, name ASC",
                (branch_id, int(threshold)),
            )
        rows = cur.fetchall()
        conn.close()
        return [_product(r) for r in rows]

    def update_product(
        self, product_id: str, name: str, category: str, price: float, cost_price: float, image_url: str
    ) -> bool:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            UPDATE products
            SET name=?, category=?, price=?, cost_price=?, image_url=?
            WHERE id=?
            """,
            (name, category, float(price), float(cost_price), image_url, product_id),
        )
        changed = cur.rowcount > 0
        conn.commit()
        conn.close()
        return changed

    def delete_product(self, product_id: str) -> bool:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("DELETE FROM products WHERE id=?", (product_id,))
        changed = cur.rowcount > 0
        conn.commit()
        conn.close()
        return changed

    def adjust_stock(self, product_id: str, amount: int) -> Optional[Product]:
        """Apply a signed delta; returns None when the product is missing or stock would go negative."""
        conn = self._conn()
        cur = conn.cursor()
        try:
            cur.execute("BEGIN IMMEDIATE")
            cur.execute(
                "UPDATE products SET stock = stock + ? WHERE id=? AND stock + ? >= 0",
                (int(amount), product_id, int(amount)),
            )
            if cur.rowcount == 0:
                conn.rollback()
                return None
            cur.execute(f"SELECT {_PRODUCT_COLUMNS} FROM products WHERE id=?", (product_id,))
            product = _product(cur.fetchone())
            conn.commit()
            return product
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # ---------- Users ----------
    def create_user(self, user: User) -> User:
        conn = self._conn()
        cur = conn.cursor()
        self._insert_user(cur, user)
        conn.commit()
        conn.close()
        return user

    def _insert_user(self, cur: sqlite3.Cursor, user: User) -> None:
        cur.execute(
            f"INSERT INTO users ({_USER_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                user.id,
                user.name,
                user.email,
                user.role,
                user.branch_id,
                user.business_name,
                user.package_type,
                user.status,
                user.expired_at,
            ),
        )

    def get_user(self, user_id: str) -> Optional[User]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {_USER_COLUMNS} FROM users WHERE id=?", (user_id,))
        r = cur.fetchone()
        conn.close()
        return _user(r) if r else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {_USER_COLUMNS} FROM users WHERE lower(email)=lower(?)", (email,))
        r = cur.fetchone()
        conn.close()
        return _user(r) if r else None

    def list_cashiers(self, branch_ids: Iterable[str]) -> list[User]:
        ids = list(branch_ids)
        if not ids:
            return []
        marks = ",".join("?" for _ in ids)
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            f"SELECT {_USER_COLUMNS} FROM users WHERE role='cashier' AND branch_id IN ({marks}) ORDER BY name",
            ids,
        )
        rows = cur.fetchall()
        conn.close()
        return [_user(r) for r in rows]

    def update_user_status(self, user_id: str, status: str) -> bool:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("UPDATE users SET status=? WHERE id=?", (status, user_id))
        changed = cur.rowcount > 0
        conn.commit()
        conn.close()
        return changed

    def delete_user(self, user_id: str) -> bool:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("DELETE FROM users WHERE id=?", (user_id,))
        changed = cur.rowcount > 0
        conn.commit()
        conn.close()
        return changed

    # ---------- Registration payments ----------
    def create_registration_payment(self, record: PaymentRecord, pending_payload: dict) -> PaymentRecord:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            f"""
            INSERT INTO registration_payments ({_PAYMENT_COLUMNS}, pending_payload)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.order_id,
                float(record.amount),
                record.payment_type,
                record.status,
                record.bank,
                record.va_number,
                record.qris_url,
                record.user_id,
                json.dumps(pending_payload, ensure_ascii=False),
            ),
        )
        conn.commit()
        conn.close()
        return record

    def get_registration_payment(self, order_id: str) -> tuple[PaymentRecord, Optional[dict]] | None:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            f"SELECT {_PAYMENT_COLUMNS}, pending_payload FROM registration_payments WHERE order_id=?",
            (order_id,),
        )
        r = cur.fetchone()
        conn.close()
        if not r:
            return None
        payload = json.loads(r[8]) if r[8] else None
        return _payment(r), payload

    def complete_registration(self, order_id: str, status: str, user: Optional[User]) -> bool:
        """Mark a pending registration payment and create its owner in one transaction."""
        conn = self._conn()
        cur = conn.cursor()
        try:
            cur.execute("BEGIN IMMEDIATE")
            cur.execute(
                """
                UPDATE registration_payments
                SET status=?, user_id=?, pending_payload=NULL
                WHERE order_id=? AND status='pending'
                """,
                (status, user.id if user else None, order_id),
            )
            if cur.rowcount == 0:
                conn.rollback()
                return False
            if user is not None:
                self._insert_user(cur, user)
            conn.commit()
            return True
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # ---------- Transactions ----------
    def create_transaction(self, tx: Transaction) -> Transaction:
        """Insert the record and decrement stock atomically.

        Each decrement is conditional on enough stock; the write lock is taken
        up front so concurrent terminals serialize on this boundary.
        """
        conn = self._conn()
        cur = conn.cursor()
        try:
            cur.execute("BEGIN IMMEDIATE")
            for it in tx.items:
                cur.execute(
                    "UPDATE products SET stock = stock - ? WHERE id=? AND branch_id=? AND stock >= ?",
                    (int(it.quantity), it.product_id, tx.branch_id, int(it.quantity)),
                )
                if cur.rowcount == 0:
                    raise OutOfStockError(f"Not enough stock for {it.name}.")

            details = tx.payment_details
            cur.execute(
                f"INSERT INTO transactions ({_TX_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    tx.id,
                    tx.branch_id,
                    tx.cashier_id,
                    float(tx.subtotal),
                    float(tx.discount),
                    float(tx.tax),
                    float(tx.total),
                    tx.payment_method,
                    tx.status,
                    tx.created_at,
                    details.bank,
                    details.va_number,
                    details.qris_url,
                    details.gateway_order_id,
                ),
            )
            for position, it in enumerate(tx.items):
                cur.execute(
                    """
                    INSERT INTO transaction_items (
                        transaction_id, position, product_id, name, quantity, price_snapshot, cost_snapshot
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        tx.id,
                        position,
                        it.product_id,
                        it.name,
                        int(it.quantity),
                        float(it.price_snapshot),
                        float(it.cost_snapshot),
                    ),
                )
            conn.commit()
            return tx
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def settle_transaction(self, transaction_id: str, status: str, settled_at: str, restock: bool) -> bool:
        """Move a pending transaction to a terminal status; False if it was no longer pending."""
        conn = self._conn()
        cur = conn.cursor()
        try:
            cur.execute("BEGIN IMMEDIATE")
            cur.execute(
                "UPDATE transactions SET status=?, settled_at=? WHERE id=? AND status=?",
                (status, settled_at, transaction_id, STATUS_PENDING),
            )
            if cur.rowcount == 0:
                conn.rollback()
                return False
            if restock:
                cur.execute(
                    "SELECT product_id, quantity FROM transaction_items WHERE transaction_id=?",
                    (transaction_id,),
                )
                for product_id, qty in cur.fetchall():
                    # deleted products are skipped
                    cur.execute("UPDATE products SET stock = stock + ? WHERE id=?", (int(qty), product_id))
            conn.commit()
            return True
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        found = self._load_transactions("WHERE id=?", (transaction_id,))
        return found[0] if found else None

    def list_transactions(
        self,
        branch_ids: Optional[Iterable[str]] = None,
        status: Optional[str] = None,
    ) -> list[Transaction]:
        clauses: list[str] = []
        params: list = []
        if branch_ids is not None:
            ids = list(branch_ids)
            if not ids:
                return []
            clauses.append(f"branch_id IN ({','.join('?' for _ in ids)})")
            params.extend(ids)
        if status is not None:
            clauses.append("status=?")
            params.append(status)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return self._load_transactions(where, tuple(params))

    def list_pending_before(self, cutoff_iso: str) -> list[Transaction]:
        return self._load_transactions("WHERE status=? AND created_at < ?", (STATUS_PENDING, cutoff_iso))

    def _load_transactions(self, where: str, params: tuple) -> list[Transaction]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {_TX_COLUMNS} FROM transactions {where} ORDER BY created_at, rowid", params)
        rows = cur.fetchall()
        if not rows:
            conn.close()
            return []

        ids = [r[0] for r in rows]
        items: dict[str, list[TransactionItem]] = {tx_id: [] for tx_id in ids}
        # chunked to stay under SQLite's bound-parameter limit
        for start in range(0, len(ids), 500):
            chunk = ids[start:start + 500]
            cur.execute(
                f"""
                SELECT transaction_id, product_id, name, quantity, price_snapshot, cost_snapshot
                FROM transaction_items
                WHERE transaction_id IN ({','.join('?' for _ in chunk)})
                ORDER BY transaction_id, position
                """,
                chunk,
            )
            for r in cur.fetchall():
                items[str(r[0])].append(
                    TransactionItem(
                        product_id=str(r[1]),
                        name=str(r[2]),
                        quantity=int(r[3]),
                        price_snapshot=float(r[4]),
                        cost_snapshot=float(r[5]),
                    )
                )
        conn.close()

        return [
            Transaction(
                id=str(r[0]),
                branch_id=str(r[1]),
                cashier_id=str(r[2]),
                items=tuple(items[str(r[0])]),
                subtotal=float(r[3]),
                discount=float(r[4]),
                tax=float(r[5]),
                total=float(r[6]),
                payment_method=str(r[7]),
                status=str(r[8]),
                created_at=str(r[9]),
                payment_details=PaymentDetails(bank=r[10], va_number=r[11], qris_url=r[12], gateway_order_id=r[13]),
            )
            for r in rows
        ]

