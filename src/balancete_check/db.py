# Balancete Check - Parametrization consistency engine for accounting offices
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.


"""
Database layer for Balancete Check.

This module provides all low-level accessors for the SQLite database that
stores the inputs of the validation engine. It is responsible for:

- Initializing the database schema.
- Replacing the standard chart of accounts.
- Storing parametrization links, enforcing "one trial-balance code feeds
  one chart node" per company.
- Importing monthly trial balances and tracking their parametrization
  status ("pendente", "parametrizando", "parametrizado").
- Deleting a trial balance and listing its lines not linked yet.
- Exposing the read interface used by the orchestrator (DatabaseSource).

------------------------------------------------------------------------------
Schema Overview
------------------------------------------------------------------------------

1) chart_accounts
   The standard chart of accounts ("plano de contas").

   - code           TEXT PRIMARY KEY   -- '1', '1.1', '1.1.3.2', ...
   - name           TEXT NOT NULL
   - business_type  TEXT NOT NULL      -- asset | liability | equity | ...
   - group_name     TEXT

2) parametrizations
   Links from a company's trial-balance codes to chart nodes.

   - id                  INTEGER PRIMARY KEY AUTOINCREMENT
   - company_id          TEXT NOT NULL
   - chart_code          TEXT NOT NULL
   - trial_balance_code  TEXT NOT NULL
   - trial_balance_name  TEXT
   - created_at          TEXT NOT NULL (ISO datetime, UTC)
   - UNIQUE (company_id, trial_balance_code)

3) trial_balances
   One row per imported monthly trial balance ("balancete").

   - id             INTEGER PRIMARY KEY AUTOINCREMENT
   - company_id     TEXT NOT NULL
   - company_name   TEXT
   - year           INTEGER NOT NULL
   - month          INTEGER NOT NULL
   - status         TEXT NOT NULL      -- pendente | parametrizando | parametrizado
   - source_label   TEXT              -- file name, connector name, ...
   - total_lines    INTEGER NOT NULL
   - mapped_lines   INTEGER NOT NULL
   - created_at     TEXT NOT NULL
   - updated_at     TEXT
   - UNIQUE (company_id, year, month)

4) trial_balance_lines
   Lines of a trial balance; amounts are stored as integer cents.

   - id                INTEGER PRIMARY KEY AUTOINCREMENT
   - trial_balance_id  INTEGER NOT NULL  -- foreign key to trial_balances.id
   - code              TEXT NOT NULL
   - name              TEXT
   - opening_cents     INTEGER NOT NULL
   - closing_cents     INTEGER NOT NULL
   - UNIQUE (trial_balance_id, code)

------------------------------------------------------------------------------
SQLite Notes
------------------------------------------------------------------------------

- All timestamps are stored as ISO-8601 text (UTC).
- Foreign key enforcement is explicitly enabled.
- Amounts are converted to cents with ROUND_HALF_UP and read back as exact
  Decimals (cents / 100), never as floats.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path

import pandas as pd

from .accounts import ChartNode, DataIntegrityError, code_sort_key
from .io import TrialBalanceLine, parse_amount
from .mapping import (
    TRIAL_BALANCE_STATUSES,
    ParametrizationLink,
    coverage_status,
)
from .periods import ELIGIBLE_STATUSES, eligible_months

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseConfig:
    """
    Database configuration for Balancete Check.

    Attributes
    ----------
    engine:
        Database engine identifier. Only "sqlite" is supported.
    path:
        Path to the SQLite database file.
    """

    engine: str
    path: Path


@dataclass(frozen=True)
class TrialBalanceImport:
    """
    Summary of the import of one monthly trial balance.

    Attributes
    ----------
    trial_balance_id:
        Identifier of the row in `trial_balances`.
    lines_imported:
        Number of lines stored for the month.
    replaced:
        True if a trial balance already existed for this company and month
        and its lines were replaced.
    status:
        Parametrization status computed after the import.
    """

    trial_balance_id: int
    lines_imported: int
    replaced: bool
    status: str


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _ensure_sqlite(cfg: DatabaseConfig) -> None:
    """Raise if the configuration does not refer to a supported engine."""
    if cfg.engine.lower() != "sqlite":
        msg = (
            f"Unsupported database engine: {cfg.engine!r}. "
            "Only 'sqlite' is supported for now."
        )
        raise ValueError(msg)


def _connect(cfg: DatabaseConfig) -> sqlite3.Connection:
    """
    Open a SQLite connection with foreign keys enabled.

    The caller is responsible for closing the connection.
    """
    _ensure_sqlite(cfg)
    conn = sqlite3.connect(cfg.path)
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def _connect_existing(cfg: DatabaseConfig) -> sqlite3.Connection:
    """
    Open a connection for the readers, without creating anything.

    Raises
    ------
    FileNotFoundError
        If the database file does not exist (see `init_database`).
    """
    _ensure_sqlite(cfg)
    if not cfg.path.is_file():
        raise FileNotFoundError(
            f"Database not found: {cfg.path}. Run 'balancete-check init' first."
        )
    return _connect(cfg)


def _create_schema_if_needed(conn: sqlite3.Connection) -> None:
    """
    Create tables and indexes if they do not exist yet.

    This function is idempotent and can be called multiple times safely.
    """
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS chart_accounts (
            code          TEXT PRIMARY KEY,
            name          TEXT NOT NULL,
            business_type TEXT NOT NULL,
            group_name    TEXT
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS parametrizations (
            id                 INTEGER PRIMARY KEY AUTOINCREMENT,
            company_id         TEXT NOT NULL,
            chart_code         TEXT NOT NULL,
            trial_balance_code TEXT NOT NULL,
            trial_balance_name TEXT,
            created_at         TEXT NOT NULL,

            UNIQUE (company_id, trial_balance_code)
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS trial_balances (
            id            INTEGER PRIMARY KEY AUTOINCREMENT,
            company_id    TEXT    NOT NULL,
            company_name  TEXT,
            year          INTEGER NOT NULL,
            month         INTEGER NOT NULL,
            status        TEXT    NOT NULL DEFAULT 'pendente',
            -- 'pendente' | 'parametrizando' | 'parametrizado'
            source_label  TEXT,
            total_lines   INTEGER NOT NULL DEFAULT 0,
            mapped_lines  INTEGER NOT NULL DEFAULT 0,
            created_at    TEXT    NOT NULL,
            updated_at    TEXT,

            UNIQUE (company_id, year, month)
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS trial_balance_lines (
            id               INTEGER PRIMARY KEY AUTOINCREMENT,
            trial_balance_id INTEGER NOT NULL,
            code             TEXT    NOT NULL,
            name             TEXT,
            opening_cents    INTEGER NOT NULL,
            closing_cents    INTEGER NOT NULL,

            UNIQUE (trial_balance_id, code),
            FOREIGN KEY (trial_balance_id) REFERENCES trial_balances(id)
                ON DELETE CASCADE
        );
        """
    )

    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_parametrizations_company_chart
            ON parametrizations(company_id, chart_code);
        """
    )

    conn.commit()


def _now_utc_iso() -> str:
    """Return the current UTC datetime as ISO string."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _to_cents(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _from_cents(cents: int) -> Decimal:
    return Decimal(int(cents)) / Decimal(100)


def _refresh_status(conn: sqlite3.Connection, trial_balance_id: int) -> str:
    """Recompute mapped/total counts and the status of one trial balance."""
    row = conn.execute(
        "SELECT company_id FROM trial_balances WHERE id = ?;",
        (trial_balance_id,),
    ).fetchone()
    if row is None:
        raise ValueError(f"Trial balance #{trial_balance_id} not found.")
    company_id = row[0]

    total, mapped = conn.execute(
        """
        SELECT COUNT(*),
               COUNT(p.id)
          FROM trial_balance_lines AS l
          LEFT JOIN parametrizations AS p
                 ON p.company_id = ?
                AND p.trial_balance_code = l.code
         WHERE l.trial_balance_id = ?;
        """,
        (company_id, trial_balance_id),
    ).fetchone()

    status = coverage_status(mapped, total)
    conn.execute(
        """
        UPDATE trial_balances
           SET total_lines = ?, mapped_lines = ?, status = ?, updated_at = ?
         WHERE id = ?;
        """,
        (total, mapped, status, _now_utc_iso(), trial_balance_id),
    )
    return status


def _check_chart_code(conn: sqlite3.Connection, chart_code: str) -> None:
    exists = conn.execute(
        "SELECT 1 FROM chart_accounts WHERE code = ?;", (chart_code,)
    ).fetchone()
    if exists is None:
        raise DataIntegrityError(
            f"Chart code {chart_code!r} does not exist in the chart of accounts."
        )


def _unique_codes(codes: Iterable[tuple[str, str]]) -> list[tuple[str, str]]:
    """(code, name) pairs with stripped values, one pair per code."""
    by_code: dict[str, str] = {}
    for code, name in codes:
        by_code.setdefault(str(code).strip(), str(name).strip())
    return list(by_code.items())


def _insert_links(
    conn: sqlite3.Connection,
    company_id: str,
    chart_code: str,
    pairs: list[tuple[str, str]],
) -> None:
    now = _now_utc_iso()
    conn.executemany(
        """
        INSERT INTO parametrizations (
            company_id, chart_code, trial_balance_code,
            trial_balance_name, created_at
        )
        VALUES (?, ?, ?, ?, ?);
        """,
        [(company_id, chart_code, code, name, now) for code, name in pairs],
    )


def _refresh_company_statuses(conn: sqlite3.Connection, company_id: str) -> None:
    ids = [
        r[0]
        for r in conn.execute(
            "SELECT id FROM trial_balances WHERE company_id = ?;", (company_id,)
        ).fetchall()
    ]
    for trial_balance_id in ids:
        _refresh_status(conn, trial_balance_id)


# ---------------------------------------------------------------------------
# Public API: schema & writes
# ---------------------------------------------------------------------------


def init_database(cfg: DatabaseConfig) -> None:
    """
    Initialize the database schema if needed.

    - Creates the SQLite file (and its parent directory) if it does not exist.
    - Creates tables and indexes if they are missing.
    - This function is idempotent: calling it multiple times is safe.

    Raises
    ------
    ValueError
        If cfg.engine is not supported.
    sqlite3.Error
        If schema creation fails.
    """
    cfg.path.parent.mkdir(parents=True, exist_ok=True)

    conn = _connect(cfg)
    try:
        _create_schema_if_needed(conn)
    finally:
        conn.close()


def replace_chart_of_accounts(cfg: DatabaseConfig, nodes: Iterable[ChartNode]) -> int:
    """
    Replace the whole chart of accounts.

    Returns
    -------
    int
        Number of chart nodes stored.
    """
    init_database(cfg)
    rows = [(n.code, n.name, n.business_type, n.group) for n in nodes]

    conn = _connect(cfg)
    try:
        conn.execute("DELETE FROM chart_accounts;")
        conn.executemany(
            """
            INSERT INTO chart_accounts (code, name, business_type, group_name)
            VALUES (?, ?, ?, ?);
            """,
            rows,
        )
        conn.commit()
    finally:
        conn.close()

    logger.info("Chart of accounts replaced: %d node(s).", len(rows))
    return len(rows)


def save_parametrization(
    cfg: DatabaseConfig,
    company_id: str,
    chart_code: str,
    codes: Iterable[tuple[str, str]],
) -> int:
    """
    Replace the trial-balance codes linked to one chart node.

    This mirrors the parametrization screen: the user selects a chart node,
    ticks the trial-balance accounts that feed it and saves. Previous links
    of the node are removed first.

    Parameters
    ----------
    cfg:
        Database configuration.
    company_id:
        Company whose parametrization is edited.
    chart_code:
        Target chart node.
    codes:
        (trial_balance_code, trial_balance_name) pairs. Empty to unlink
        everything from the node.

    Returns
    -------
    int
        Number of links stored for the node.

    Raises
    ------
    DataIntegrityError
        If `chart_code` is not in the chart of accounts, or if one of the
        codes is already linked to another chart node of the same company.
    """
    init_database(cfg)
    pairs = _unique_codes(codes)

    conn = _connect(cfg)
    try:
        _check_chart_code(conn, chart_code)

        for code, _ in pairs:
            other = conn.execute(
                """
                SELECT chart_code FROM parametrizations
                 WHERE company_id = ? AND trial_balance_code = ?
                   AND chart_code <> ?;
                """,
                (company_id, code, chart_code),
            ).fetchone()
            if other is not None:
                raise DataIntegrityError(
                    f"Trial balance code {code!r} is already linked to chart "
                    f"code {other[0]!r} for company {company_id!r}."
                )

        conn.execute(
            "DELETE FROM parametrizations WHERE company_id = ? AND chart_code = ?;",
            (company_id, chart_code),
        )
        _insert_links(conn, company_id, chart_code, pairs)
        _refresh_company_statuses(conn, company_id)
        conn.commit()
    finally:
        conn.close()

    return len(pairs)


def import_parametrization_links(
    cfg: DatabaseConfig, links: Iterable[ParametrizationLink]
) -> int:
    """
    Bulk-insert parametrization links (e.g. from a CSV export).

    Links are grouped by (company, chart node) and, as with
    `save_parametrization`, the existing links of those nodes are replaced.
    The whole batch is checked before anything is written and is stored in
    a single transaction: either every link is imported or none is.

    Returns
    -------
    int
        Number of links stored.

    Raises
    ------
    DataIntegrityError
        If a chart code is unknown, if the batch links one trial-balance
        code to two chart nodes, or if a code is already linked to a chart
        node that the batch does not replace.
    """
    raw: dict[tuple[str, str], list[tuple[str, str]]] = {}
    for link in links:
        raw.setdefault((link.company_id, link.chart_code), []).append(
            (link.trial_balance_code, link.trial_balance_name)
        )
    grouped = {key: _unique_codes(codes) for key, codes in raw.items()}

    # (company, trial balance code) -> chart code, within the batch.
    owners: dict[tuple[str, str], str] = {}
    for (company_id, chart_code), pairs in grouped.items():
        for code, _ in pairs:
            owner = owners.setdefault((company_id, code), chart_code)
            if owner != chart_code:
                raise DataIntegrityError(
                    f"Trial balance code {code!r} is linked to both chart codes "
                    f"{owner!r} and {chart_code!r} for company {company_id!r}."
                )

    init_database(cfg)
    conn = _connect(cfg)
    try:
        for _, chart_code in grouped:
            _check_chart_code(conn, chart_code)

        for (company_id, code), chart_code in owners.items():
            stored = conn.execute(
                """
                SELECT chart_code FROM parametrizations
                 WHERE company_id = ? AND trial_balance_code = ?;
                """,
                (company_id, code),
            ).fetchone()
            if (
                stored is not None
                and stored[0] != chart_code
                and (company_id, stored[0]) not in grouped
            ):
                raise DataIntegrityError(
                    f"Trial balance code {code!r} is already linked to chart "
                    f"code {stored[0]!r} for company {company_id!r}."
                )

        # All deletes first: a code may move between two replaced nodes.
        for company_id, chart_code in grouped:
            conn.execute(
                """
                DELETE FROM parametrizations
                 WHERE company_id = ? AND chart_code = ?;
                """,
                (company_id, chart_code),
            )
        for (company_id, chart_code), pairs in grouped.items():
            _insert_links(conn, company_id, chart_code, pairs)

        for company_id in sorted({company for company, _ in grouped}):
            _refresh_company_statuses(conn, company_id)
        conn.commit()
    finally:
        conn.close()

    total = len(owners)
    logger.info("Imported %d parametrization link(s).", total)
    return total


def import_trial_balance(
    cfg: DatabaseConfig,
    df: pd.DataFrame,
    *,
    company_id: str,
    year: int,
    month: int,
    company_name: str = "",
    source_label: str = "",
) -> TrialBalanceImport:
    """
    Import one monthly trial balance.

    Parameters
    ----------
    cfg:
        Database configuration.
    df:
        Normalized trial balance (see io.read_trial_balance) with columns
        code, name, opening_balance, closing_balance.
    company_id, company_name:
        Company the trial balance belongs to.
    year, month:
        Period of the trial balance.
    source_label:
        Human-readable origin, e.g. the file name.

    Behavior
    --------
    - If a trial balance already exists for (company, year, month), its
      lines are replaced; otherwise a new trial balance row is created.
    - The parametrization status is recomputed from the company's links.

    Raises
    ------
    ValueError
        If df does not contain the required columns or the month is invalid.
    sqlite3.Error
        If database operations fail.
    """
    required = {"code", "name", "opening_balance", "closing_balance"}
    missing = required.difference(df.columns)
    if missing:
        cols = ", ".join(sorted(missing))
        raise ValueError(f"DataFrame is missing required column(s): {cols}")
    if not 1 <= int(month) <= 12:
        raise ValueError(f"Invalid month: {month!r} (expected 1-12).")

    init_database(cfg)
    now = _now_utc_iso()

    rows = [
        (
            str(r["code"]).strip(),
            str(r["name"]).strip(),
            _to_cents(parse_amount(r["opening_balance"])),
            _to_cents(parse_amount(r["closing_balance"])),
        )
        for _, r in df.iterrows()
    ]

    conn = _connect(cfg)
    try:
        cur = conn.cursor()
        existing = cur.execute(
            """
            SELECT id FROM trial_balances
             WHERE company_id = ? AND year = ? AND month = ?;
            """,
            (company_id, int(year), int(month)),
        ).fetchone()

        if existing is None:
            cur.execute(
                """
                INSERT INTO trial_balances (
                    company_id, company_name, year, month, status,
                    source_label, created_at
                )
                VALUES (?, ?, ?, ?, 'pendente', ?, ?);
                """,
                (company_id, company_name, int(year), int(month), source_label, now),
            )
            trial_balance_id = cur.lastrowid
            replaced = False
        else:
            trial_balance_id = existing[0]
            replaced = True
            cur.execute(
                "DELETE FROM trial_balance_lines WHERE trial_balance_id = ?;",
                (trial_balance_id,),
            )
            cur.execute(
                """
                UPDATE trial_balances
                   SET company_name = COALESCE(NULLIF(?, ''), company_name),
                       source_label = ?, updated_at = ?
                 WHERE id = ?;
                """,
                (company_name, source_label, now, trial_balance_id),
            )

        cur.executemany(
            """
            INSERT INTO trial_balance_lines (
                trial_balance_id, code, name, opening_cents, closing_cents
            )
            VALUES (?, ?, ?, ?, ?);
            """,
            [(trial_balance_id, *row) for row in rows],
        )

        status = _refresh_status(conn, trial_balance_id)
        conn.commit()
    finally:
        conn.close()

    logger.info(
        "Imported trial balance %02d/%d for company %s: %d line(s), status %s.",
        int(month),
        int(year),
        company_id,
        len(rows),
        status,
    )
    return TrialBalanceImport(
        trial_balance_id=trial_balance_id,
        lines_imported=len(rows),
        replaced=replaced,
        status=status,
    )


def refresh_trial_balance_status(cfg: DatabaseConfig, company_id: str) -> None:
    """Recompute the parametrization status of every trial balance of a company."""
    init_database(cfg)
    conn = _connect(cfg)
    try:
        _refresh_company_statuses(conn, company_id)
        conn.commit()
    finally:
        conn.close()


def set_trial_balance_status(
    cfg: DatabaseConfig, company_id: str, year: int, month: int, status: str
) -> None:
    """
    Force the status of one trial balance.

    The status is normally derived from the parametrization coverage; this
    is an escape hatch for back-office corrections.

    Raises
    ------
    ValueError
        If the status is unknown or the trial balance does not exist.
    """
    if status not in TRIAL_BALANCE_STATUSES:
        raise ValueError(
            f"Invalid trial balance status: {status!r}. "
            f"Expected one of: {', '.join(TRIAL_BALANCE_STATUSES)}."
        )

    init_database(cfg)
    conn = _connect(cfg)
    try:
        cur = conn.execute(
            """
            UPDATE trial_balances
               SET status = ?, updated_at = ?
             WHERE company_id = ? AND year = ? AND month = ?;
            """,
            (status, _now_utc_iso(), company_id, int(year), int(month)),
        )
        if cur.rowcount == 0:
            raise ValueError(
                f"No trial balance for company {company_id!r} in "
                f"{int(month):02d}/{int(year)}."
            )
        conn.commit()
    finally:
        conn.close()


def delete_trial_balance(
    cfg: DatabaseConfig, company_id: str, year: int, month: int
) -> int:
    """
    Delete one imported trial balance and its lines.

    The month disappears from the listing and from validation runs. The
    company's parametrization links are kept.

    Returns
    -------
    int
        Number of lines deleted with the trial balance.

    Raises
    ------
    ValueError
        If no trial balance exists for the company and month.
    """
    conn = _connect_existing(cfg)
    try:
        row = conn.execute(
            """
            SELECT id, total_lines FROM trial_balances
             WHERE company_id = ? AND year = ? AND month = ?;
            """,
            (company_id, int(year), int(month)),
        ).fetchone()
        if row is None:
            raise ValueError(
                f"No trial balance for company {company_id!r} in "
                f"{int(month):02d}/{int(year)}."
            )
        trial_balance_id, total_lines = row

        # trial_balance_lines rows go with it (ON DELETE CASCADE).
        conn.execute("DELETE FROM trial_balances WHERE id = ?;", (trial_balance_id,))
        conn.commit()
    finally:
        conn.close()

    logger.info(
        "Deleted trial balance %02d/%d for company %s (%d line(s)).",
        int(month),
        int(year),
        company_id,
        total_lines,
    )
    return total_lines


# ---------------------------------------------------------------------------
# Public API: reads
# ---------------------------------------------------------------------------


def list_trial_balances(
    cfg: DatabaseConfig, company_id: str | None = None
) -> pd.DataFrame:
    """
    Return the imported trial balances, ordered by company, year and month.

    Columns:
    - id
    - company_id
    - company_name
    - year
    - month
    - status
    - total_lines
    - mapped_lines
    - coverage_pct   (mapped_lines / total_lines, in percent)
    - source_label
    """
    sql = """
        SELECT id, company_id, company_name, year, month, status,
               total_lines, mapped_lines, source_label
          FROM trial_balances
    """
    params: tuple = ()
    if company_id is not None:
        sql += " WHERE company_id = ?"
        params = (company_id,)
    sql += " ORDER BY company_id, year, month;"

    conn = _connect_existing(cfg)
    try:
        rows = conn.execute(sql, params).fetchall()
    finally:
        conn.close()

    df = pd.DataFrame(
        rows,
        columns=[
            "id",
            "company_id",
            "company_name",
            "year",
            "month",
            "status",
            "total_lines",
            "mapped_lines",
            "source_label",
        ],
    )
    df.insert(
        len(df.columns) - 1,
        "coverage_pct",
        [
            round(mapped * 100 / total, 1) if total else 0.0
            for mapped, total in zip(df["mapped_lines"], df["total_lines"])
        ],
    )
    return df


def load_chart_of_accounts(cfg: DatabaseConfig) -> list[ChartNode]:
    """Return the chart of accounts ordered by code."""
    conn = _connect_existing(cfg)
    try:
        rows = conn.execute(
            "SELECT code, name, business_type, group_name FROM chart_accounts;"
        ).fetchall()
    finally:
        conn.close()

    nodes = [
        ChartNode(code=code, name=name, business_type=btype, group=group or "")
        for code, name, btype, group in rows
    ]
    return sorted(nodes, key=lambda n: code_sort_key(n.code))


def load_parametrization_links(
    cfg: DatabaseConfig, company_id: str
) -> list[ParametrizationLink]:
    """Return every parametrization link of a company."""
    conn = _connect_existing(cfg)
    try:
        rows = conn.execute(
            """
            SELECT chart_code, trial_balance_code, trial_balance_name
              FROM parametrizations
             WHERE company_id = ?
             ORDER BY chart_code, trial_balance_code;
            """,
            (company_id,),
        ).fetchall()
    finally:
        conn.close()

    return [
        ParametrizationLink(
            company_id=company_id,
            chart_code=chart_code,
            trial_balance_code=tb_code,
            trial_balance_name=tb_name or "",
        )
        for chart_code, tb_code, tb_name in rows
    ]


def load_trial_balance_lines(
    cfg: DatabaseConfig, company_id: str, year: int, month: int
) -> list[TrialBalanceLine]:
    """
    Return the lines of one company's trial balance for one month.

    An empty list is returned if the month was never imported.
    """
    conn = _connect_existing(cfg)
    try:
        rows = conn.execute(
            """
            SELECT l.code, l.name, l.opening_cents, l.closing_cents
              FROM trial_balance_lines AS l
              JOIN trial_balances AS t ON t.id = l.trial_balance_id
             WHERE t.company_id = ? AND t.year = ? AND t.month = ?
             ORDER BY l.code;
            """,
            (company_id, int(year), int(month)),
        ).fetchall()
    finally:
        conn.close()

    return [
        TrialBalanceLine(
            company_id=company_id,
            year=int(year),
            month=int(month),
            code=code,
            name=name or "",
            opening_balance=_from_cents(opening),
            closing_balance=_from_cents(closing),
        )
        for code, name, opening, closing in rows
    ]


def list_unmapped_lines(
    cfg: DatabaseConfig, company_id: str, year: int, month: int
) -> pd.DataFrame:
    """
    Return the lines of one trial balance not yet linked to any chart node.

    These are the accounts that still keep the month out of the
    'parametrizado' status. Columns: code, name, closing_balance (Decimal).

    Raises
    ------
    ValueError
        If no trial balance exists for the company and month.
    """
    conn = _connect_existing(cfg)
    try:
        exists = conn.execute(
            """
            SELECT 1 FROM trial_balances
             WHERE company_id = ? AND year = ? AND month = ?;
            """,
            (company_id, int(year), int(month)),
        ).fetchone()
        if exists is None:
            raise ValueError(
                f"No trial balance for company {company_id!r} in "
                f"{int(month):02d}/{int(year)}."
            )

        rows = conn.execute(
            """
            SELECT l.code, l.name, l.closing_cents
              FROM trial_balance_lines AS l
              JOIN trial_balances AS t ON t.id = l.trial_balance_id
              LEFT JOIN parametrizations AS p
                     ON p.company_id = t.company_id
                    AND p.trial_balance_code = l.code
             WHERE t.company_id = ? AND t.year = ? AND t.month = ?
               AND p.id IS NULL
             ORDER BY l.code;
            """,
            (company_id, int(year), int(month)),
        ).fetchall()
    finally:
        conn.close()

    return pd.DataFrame(
        [(code, name or "", _from_cents(closing)) for code, name, closing in rows],
        columns=["code", "name", "closing_balance"],
    )


def load_eligible_months(
    cfg: DatabaseConfig,
    company_id: str,
    year: int,
    eligible_statuses: Iterable[str] = ELIGIBLE_STATUSES,
) -> list[int]:
    """Months of `year` whose trial balance status allows validation."""
    conn = _connect_existing(cfg)
    try:
        rows = conn.execute(
            """
            SELECT month, status FROM trial_balances
             WHERE company_id = ? AND year = ?;
            """,
            (company_id, int(year)),
        ).fetchall()
    finally:
        conn.close()

    return eligible_months(rows, eligible_statuses)


class DatabaseSource:
    """ValidationSource backed by the SQLite database.

    Each call opens its own connection, so the object can be shared by the
    orchestrator's worker threads.
    """

    def __init__(
        self,
        cfg: DatabaseConfig,
        eligible_statuses: Iterable[str] = ELIGIBLE_STATUSES,
    ):
        self.cfg = cfg
        self.eligible_statuses = tuple(eligible_statuses)

    def get_chart_of_accounts(self) -> list[ChartNode]:
        return load_chart_of_accounts(self.cfg)

    def get_parametrization_links(self, company_id: str) -> list[ParametrizationLink]:
        return load_parametrization_links(self.cfg, company_id)

    def get_trial_balance_lines(
        self, company_id: str, year: int, month: int
    ) -> list[TrialBalanceLine]:
        return load_trial_balance_lines(self.cfg, company_id, year, month)

    def get_eligible_periods(self, company_id: str, year: int) -> list[int]:
        return load_eligible_months(
            self.cfg, company_id, year, self.eligible_statuses
        )
