from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Optional, Tuple

import pandas as pd

from .config import DB_PATH, ensure_data_directories
from .errors import ConfigError, PersistenceError
from .graph import CategoryGraph
from .ledger import Ledger
from .models import ZERO, Category, CategoryBalance, Fund, Transaction
from .presets import get_category_preset, get_preset_value
from .recorder import MutationBatch

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
PRAGMA journal_mode=WAL;
PRAGMA synchronous=NORMAL;

CREATE TABLE IF NOT EXISTS categories (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    limit_percentage TEXT NOT NULL,
    overflow_to_id INTEGER,
    FOREIGN KEY(overflow_to_id) REFERENCES categories(id)
);

CREATE TABLE IF NOT EXISTS funds (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    amount TEXT NOT NULL,
    added_at TEXT NOT NULL,
    remaining_balance_rolled TEXT NOT NULL DEFAULT '0'
);

CREATE TABLE IF NOT EXISTS transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    category_id INTEGER NOT NULL,
    amount TEXT NOT NULL,
    description TEXT,
    created_at TEXT NOT NULL,
    overflow_from_id INTEGER,
    FOREIGN KEY(category_id) REFERENCES categories(id),
    FOREIGN KEY(overflow_from_id) REFERENCES categories(id)
);

CREATE TABLE IF NOT EXISTS category_balances (
    category_id INTEGER PRIMARY KEY,
    available TEXT NOT NULL DEFAULT '0',
    allocated TEXT NOT NULL DEFAULT '0',
    spent TEXT NOT NULL DEFAULT '0',
    last_updated TEXT,
    FOREIGN KEY(category_id) REFERENCES categories(id)
);

CREATE INDEX IF NOT EXISTS ix_txn_created ON transactions (created_at);
CREATE INDEX IF NOT EXISTS ix_fund_added ON funds (added_at);
"""

TRANSACTION_COLUMNS = [
    'id', 'Created At', 'Category', 'Amount', 'Description', 'Absorbed By',
    'category_id', 'overflow_from_id',
]
FUND_COLUMNS = ['id', 'Added At', 'Amount', 'Rollover']


def _to_text(value: Decimal) -> str:
    """Money is stored as exact decimal text, never REAL."""
    return str(value)


def _to_timestamp(value: datetime) -> str:
    return value.isoformat()


def _category_from_row(row: sqlite3.Row) -> Category:
    return Category(
        id=row['id'],
        name=row['name'],
        limit_percentage=Decimal(row['limit_percentage']),
        overflow_target=row['overflow_to_id'],
    )


def _balance_from_row(row: sqlite3.Row) -> CategoryBalance:
    return CategoryBalance(
        category_id=row['category_id'],
        allocated=Decimal(row['allocated']),
        spent=Decimal(row['spent']),
        available=Decimal(row['available']),
    )


def _where_between(column: str, start: Optional[datetime], end: Optional[datetime]) -> Tuple[str, List[Any]]:
    where: List[str] = []
    params: List[Any] = []
    if start is not None:
        where.append(f"{column} >= ?")
        params.append(_to_timestamp(start))
    if end is not None:
        where.append(f"{column} <= ?")
        params.append(_to_timestamp(end))
    clause = (" WHERE " + " AND ".join(where)) if where else ""
    return clause, params


class WriteSession:
    """Snapshot and writes sharing one open write transaction."""

    def __init__(self, db: 'LedgerDatabase', conn: sqlite3.Connection) -> None:
        self._db = db
        self._conn = conn
        self.graph, self.ledger = db._read_snapshot(conn)

    def apply(self, batch: MutationBatch) -> MutationBatch:
        return self._db._apply_batch(self._conn, batch)

    def save_categories(self, categories: Iterable[Category]) -> int:
        return self._db._update_categories(self._conn, categories)


class LedgerDatabase:
    """sqlite3 store for categories, balances, funds and transactions.

    Every write that belongs to one command goes through ``transaction``:
    the snapshot it computes from and the rows it writes share a single
    ``BEGIN IMMEDIATE`` transaction, so separate processes on one file
    cannot interleave.
    """

    def __init__(self, db_path: Optional[Path] = None) -> None:
        self.db_path = Path(db_path) if db_path else DB_PATH

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        if self.db_path == DB_PATH:
            ensure_data_directories()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path), isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON")
        try:
            yield conn
        finally:
            conn.close()

    # Schema ------------------------------------------------------------------

    def init_db(self, preset: str = 'categories') -> bool:
        """Create tables and seed categories when none exist.

        The preset must name its terminal category, and that category must
        be the only one without an overflow target.

        Returns True if the preset was seeded.

        Raises:
            ConfigError: If the preset's declared terminal does not match its rows.
        """
        rows = get_category_preset(preset)
        terminal = get_preset_value(preset, 'terminal')
        roots = [row['name'] for row in rows if row['overflow_to'] is None]
        if terminal is None or roots != [terminal]:
            raise ConfigError(
                f"Preset '{preset}' declares terminal {terminal!r} but its terminal rows are {roots}"
            )

        with self.connect() as conn:
            conn.executescript(SCHEMA_SQL)
            try:
                conn.execute("BEGIN IMMEDIATE")
                count = conn.execute("SELECT COUNT(*) FROM categories").fetchone()[0]
                if count:
                    conn.execute("COMMIT")
                    return False
                ids = {}
                for row in rows:
                    target = ids[row['overflow_to']] if row['overflow_to'] else None
                    ids[row['name']] = self._insert_category(
                        conn, row['name'], row['limit_percentage'], target
                    )
                conn.execute("COMMIT")
            except sqlite3.Error as exc:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise PersistenceError(f"Could not seed categories: {exc}") from exc
        logger.info("Seeded %d categories from preset '%s'", len(ids), preset)
        return True

    def _insert_category(
        self,
        conn: sqlite3.Connection,
        name: str,
        limit: Decimal,
        overflow_to: Optional[int],
    ) -> int:
        cur = conn.execute(
            "INSERT INTO categories (name, limit_percentage, overflow_to_id) VALUES (?, ?, ?)",
            (name, _to_text(limit), overflow_to),
        )
        category_id = cur.lastrowid
        # Every category gets a zeroed balance row
        conn.execute(
            "INSERT OR IGNORE INTO category_balances (category_id, available, allocated, spent, last_updated) "
            "VALUES (?, '0', '0', '0', ?)",
            (category_id, _to_timestamp(datetime.now())),
        )
        return category_id

    # Snapshots ---------------------------------------------------------------

    def load_categories(self) -> List[Category]:
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT id, name, limit_percentage, overflow_to_id FROM categories ORDER BY id"
            ).fetchall()
        return [_category_from_row(row) for row in rows]

    def load_graph(self) -> CategoryGraph:
        return CategoryGraph(self.load_categories())

    def load_ledger(self) -> Ledger:
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT category_id, allocated, spent, available FROM category_balances ORDER BY category_id"
            ).fetchall()
        return Ledger(_balance_from_row(row) for row in rows)

    def load_snapshot(self) -> Tuple[CategoryGraph, Ledger]:
        """Categories and balances read inside one read transaction."""
        with self.connect() as conn:
            conn.execute("BEGIN")
            try:
                return self._read_snapshot(conn)
            finally:
                conn.execute("COMMIT")

    def _read_snapshot(self, conn: sqlite3.Connection) -> Tuple[CategoryGraph, Ledger]:
        categories = conn.execute(
            "SELECT id, name, limit_percentage, overflow_to_id FROM categories ORDER BY id"
        ).fetchall()
        balances = conn.execute(
            "SELECT category_id, allocated, spent, available FROM category_balances ORDER BY category_id"
        ).fetchall()
        graph = CategoryGraph(_category_from_row(row) for row in categories)
        ledger = Ledger(_balance_from_row(row) for row in balances)
        return graph, ledger

    # Writes ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator['WriteSession']:
        """Open a ``BEGIN IMMEDIATE`` transaction and yield a fresh snapshot.

        The snapshot is read after the write lock is taken, so no other
        connection can commit between the read and the writes made through
        the session. Leaving the block commits; any exception rolls back.

        Raises:
            PersistenceError: If sqlite rejects a statement or the commit.
        """
        with self.connect() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")
                yield WriteSession(self, conn)
                conn.execute("COMMIT")
            except sqlite3.Error as exc:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                logger.error("Transaction rolled back: %s", exc)
                raise PersistenceError(f"Could not commit ledger changes: {exc}") from exc
            except Exception:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise

    def commit(self, batch: MutationBatch) -> MutationBatch:
        """Apply ``batch`` atomically and return it with the new record id.

        Raises:
            PersistenceError: If any statement fails. Nothing is written.
        """
        with self.transaction() as session:
            return session.apply(batch)

    def _apply_batch(self, conn: sqlite3.Connection, batch: MutationBatch) -> MutationBatch:
        record_id = self._insert_record(conn, batch)
        stamp = _to_timestamp(datetime.now())
        for balance in batch.balances:
            self._write_balance(conn, balance, stamp)
        return batch.with_record_id(record_id)

    def _insert_record(self, conn: sqlite3.Connection, batch: MutationBatch) -> int:
        if batch.fund is not None:
            fund = batch.fund
            cur = conn.execute(
                "INSERT INTO funds (amount, added_at, remaining_balance_rolled) VALUES (?, ?, ?)",
                (_to_text(fund.amount), _to_timestamp(fund.added_at), _to_text(fund.rollover_swept)),
            )
            return cur.lastrowid
        txn = batch.transaction
        cur = conn.execute(
            "INSERT INTO transactions (category_id, amount, description, created_at, overflow_from_id) "
            "VALUES (?, ?, ?, ?, ?)",
            (
                txn.category_id,
                _to_text(txn.amount),
                txn.description,
                _to_timestamp(txn.created_at),
                txn.overflow_from_id,
            ),
        )
        return cur.lastrowid

    def _write_balance(self, conn: sqlite3.Connection, balance: CategoryBalance, stamp: str) -> None:
        conn.execute(
            "INSERT INTO category_balances (category_id, available, allocated, spent, last_updated) "
            "VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT(category_id) DO UPDATE SET available = excluded.available, "
            "allocated = excluded.allocated, spent = excluded.spent, last_updated = excluded.last_updated",
            (
                balance.category_id,
                _to_text(balance.available),
                _to_text(balance.allocated),
                _to_text(balance.spent),
                stamp,
            ),
        )

    def save_categories(self, categories: Iterable[Category]) -> int:
        """Persist percentage and overflow edits for existing categories.

        The caller validates the resulting graph first. Returns the number of
        rows updated.
        """
        with self.transaction() as session:
            return session.save_categories(categories)

    def _update_categories(self, conn: sqlite3.Connection, categories: Iterable[Category]) -> int:
        updated = 0
        for category in categories:
            cur = conn.execute(
                "UPDATE categories SET limit_percentage = ?, overflow_to_id = ? WHERE id = ?",
                (_to_text(category.limit_percentage), category.overflow_target, category.id),
            )
            updated += cur.rowcount
        return updated

    # Queries -----------------------------------------------------------------

    def fetch_transactions(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> pd.DataFrame:
        """Transactions in ``[start, end]``, newest first, with category names."""
        clause, params = _where_between('t.created_at', start, end)
        sql = (
            "SELECT t.id, t.created_at AS 'Created At', c.name AS 'Category', t.amount AS 'Amount', "
            "COALESCE(t.description, '') AS 'Description', COALESCE(o.name, c.name) AS 'Absorbed By', "
            "t.category_id, t.overflow_from_id "
            "FROM transactions t JOIN categories c ON c.id = t.category_id "
            "LEFT JOIN categories o ON o.id = t.overflow_from_id"
        )
        sql += clause + " ORDER BY t.created_at DESC, t.id DESC"

        with self.connect() as conn:
            conn.row_factory = None
            df = pd.read_sql_query(sql, conn, params=params)
        if df.empty:
            return pd.DataFrame(columns=TRANSACTION_COLUMNS)
        df['Amount'] = df['Amount'].map(Decimal)
        df['Created At'] = pd.to_datetime(df['Created At'], format='ISO8601')
        df['overflow_from_id'] = df['overflow_from_id'].astype('Int64')
        return df

    def fetch_funds(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> pd.DataFrame:
        clause, params = _where_between('added_at', start, end)
        sql = (
            "SELECT id, added_at AS 'Added At', amount AS 'Amount', "
            "remaining_balance_rolled AS 'Rollover' FROM funds"
        )
        sql += clause + " ORDER BY added_at DESC, id DESC"

        with self.connect() as conn:
            conn.row_factory = None
            df = pd.read_sql_query(sql, conn, params=params)
        if df.empty:
            return pd.DataFrame(columns=FUND_COLUMNS)
        df['Amount'] = df['Amount'].map(Decimal)
        df['Rollover'] = df['Rollover'].map(Decimal)
        df['Added At'] = pd.to_datetime(df['Added At'], format='ISO8601')
        return df

    def load_transactions(self) -> List[Transaction]:
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT id, category_id, amount, description, created_at, overflow_from_id "
                "FROM transactions ORDER BY id"
            ).fetchall()
        return [
            Transaction(
                id=row['id'],
                category_id=row['category_id'],
                amount=Decimal(row['amount']),
                description=row['description'] or '',
                created_at=datetime.fromisoformat(row['created_at']),
                overflow_from_id=row['overflow_from_id'],
            )
            for row in rows
        ]

    def load_funds(self) -> List[Fund]:
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT id, amount, added_at, remaining_balance_rolled FROM funds ORDER BY id"
            ).fetchall()
        return [
            Fund(
                id=row['id'],
                amount=Decimal(row['amount']),
                added_at=datetime.fromisoformat(row['added_at']),
                rollover_swept=Decimal(row['remaining_balance_rolled']),
            )
            for row in rows
        ]

    def totals(self) -> Tuple[Decimal, Decimal]:
        """(total funds added, total spent), summed exactly in Python."""
        with self.connect() as conn:
            funds = conn.execute("SELECT amount FROM funds").fetchall()
            spent = conn.execute("SELECT amount FROM transactions").fetchall()
        total_funds = sum((Decimal(r[0]) for r in funds), ZERO)
        total_spent = sum((Decimal(r[0]) for r in spent), ZERO)
        return total_funds, total_spent
