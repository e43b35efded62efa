# Balancete Check - Parametrization consistency engine for accounting offices
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
I/O module for Balancete Check.

This module handles reading monthly trial balances ("balancetes") from a CSV
file and normalizing them into a simple, consistent structure suitable for
the validation engine.

Expected input format
---------------------
Column names are case-insensitive; Portuguese headers are accepted as
aliases:

    code            (or 'codigo', 'account')
    name            (or 'nome', 'description')
    opening_balance (or 'saldo_anterior')   -- optional, defaults to 0
    closing_balance (or 'saldo_atual')

Amounts are parsed into ``decimal.Decimal`` (never binary floats) and may
be written either as ``1234.56`` or in Brazilian notation ``1.234,56``.
Amounts between parentheses are negative: ``(150,00)`` → ``-150.00``.

Output schema
-------------
``read_trial_balance`` returns a pandas DataFrame with exactly:

    - ``code``            (str)
    - ``name``            (str)
    - ``opening_balance`` (Decimal)
    - ``closing_balance`` (Decimal)

``lines_from_frame`` turns such a DataFrame into TrialBalanceLine objects
for one company and month.
"""

import os
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Union

import pandas as pd

ZERO = Decimal("0")

_PLAIN_AMOUNT = re.compile(r"[+-]?\d+(\.\d+)?")
_BRAZILIAN_AMOUNT = re.compile(r"[+-]?(\d{1,3}(\.\d{3})+|\d+),\d+")


@dataclass(frozen=True)
class TrialBalanceLine:
    """One line of a company's monthly trial balance."""

    company_id: str
    year: int
    month: int
    code: str
    name: str
    opening_balance: Decimal
    closing_balance: Decimal

    @property
    def movement(self) -> Decimal:
        """Closing balance minus opening balance for the month."""
        return self.closing_balance - self.opening_balance


def parse_amount(value: object) -> Decimal:
    """Convert a raw cell value into a Decimal amount.

    Accepted forms: numbers, '1234.56', '-1234.56', '1.234,56', '1234,56',
    '(1.234,56)'. Empty cells are read as zero. Any other grouping, such as
    '1,234.56', is rejected rather than guessed.

    Raises:
        ValueError: if the value cannot be interpreted as an amount.
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        if pd.isna(value):
            return ZERO
        # repr() keeps the shortest round-tripping form (0.1 -> '0.1').
        return Decimal(repr(value))

    s = str(value).strip().replace(" ", "")
    if s == "" or s.lower() == "nan":
        return ZERO

    negative = False
    if s.startswith("(") and s.endswith(")"):
        negative = True
        s = s[1:-1]

    if _BRAZILIAN_AMOUNT.fullmatch(s):
        # '.' groups thousands, ',' is the decimal mark.
        s = s.replace(".", "").replace(",", ".")
    elif not _PLAIN_AMOUNT.fullmatch(s):
        raise ValueError(
            f"Invalid amount value: {value!r} (expected 1234.56 or 1.234,56)."
        )

    amount = Decimal(s)
    return -amount if negative else amount


def read_trial_balance(path: Union[str, "os.PathLike[str]"]) -> pd.DataFrame:
    """
    Read a monthly trial balance from a CSV file and normalize it.

    Parameters
    ----------
    path:
        Path to the CSV file containing the trial balance lines.

    Returns
    -------
    pandas.DataFrame
        A DataFrame with exactly these columns:

            - code            (str)
            - name            (str)
            - opening_balance (Decimal)
            - closing_balance (Decimal)

    Raises
    ------
    ValueError
        If the CSV does not contain the required columns, if an amount
        cannot be parsed or if an account code appears more than once.
    """
    df = pd.read_csv(path, dtype=str, keep_default_na=False)
    df.columns = [str(c).lower().strip() for c in df.columns]

    aliases = {
        "codigo": "code",
        "account": "code",
        "nome": "name",
        "description": "name",
        "saldo_anterior": "opening_balance",
        "saldo_atual": "closing_balance",
    }
    df = df.rename(columns={k: v for k, v in aliases.items() if v not in df.columns})
    cols = set(df.columns)

    required = {"code", "name", "closing_balance"}
    if not required.issubset(cols):
        missing = ", ".join(sorted(required - cols))
        raise ValueError(
            f"Invalid trial balance structure, missing column(s): {missing}. "
            "Expected: code, name, [opening_balance], closing_balance "
            "(Portuguese headers codigo, nome, saldo_anterior, saldo_atual "
            "are accepted)."
        )

    if "opening_balance" not in cols:
        df["opening_balance"] = ""

    out = df[["code", "name", "opening_balance", "closing_balance"]].copy()
    out["code"] = out["code"].astype(str).str.strip()
    out["name"] = out["name"].astype(str).str.strip()
    out = out[out["code"] != ""].reset_index(drop=True)

    for col in ("opening_balance", "closing_balance"):
        try:
            out[col] = out[col].map(parse_amount)
        except ValueError as exc:
            raise ValueError(f"Invalid values in '{col}' column.") from exc

    duplicated = out.loc[out["code"].duplicated(), "code"].unique().tolist()
    if duplicated:
        raise ValueError(
            "Account code(s) appear more than once in the trial balance: "
            + ", ".join(duplicated)
        )

    return out


def lines_from_frame(
    df: pd.DataFrame,
    company_id: str,
    year: int,
    month: int,
) -> list[TrialBalanceLine]:
    """Build TrialBalanceLine objects from a normalized trial balance frame."""
    lines: list[TrialBalanceLine] = []
    for row in df.itertuples(index=False):
        lines.append(
            TrialBalanceLine(
                company_id=company_id,
                year=int(year),
                month=int(month),
                code=str(row.code),
                name=str(row.name),
                opening_balance=parse_amount(row.opening_balance),
                closing_balance=parse_amount(row.closing_balance),
            )
        )
    return lines
