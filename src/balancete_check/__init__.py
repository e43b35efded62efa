# Balancete Check - Parametrization consistency engine for accounting offices
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Balancete Check
---------------

Consistency checks for the parametrization of monthly trial balances
("balancetes") against a standard chart of accounts, built for Brazilian
accounting offices.

Main capabilities:
- a hierarchical chart of accounts with dotted codes ('1', '1.1', '1.1.3'),
- per-company parametrization (trial balance code -> chart node),
- debit/credit nature resolution with the usual Brazilian exceptions
  (contra-assets, revenue deductions, accumulated losses),
- hierarchy check: every mother account equals the sum of its children,
- balance equation check: Assets - Liabilities = Revenues - Costs,
- multi-month validation on a thread pool, with caller-owned caching,
- a SQLite store and a command-line interface.

Version: 0.1.0

Usage:
    balancete-check --help
"""

__all__ = ["engine", "mapping", "validation", "multi_periods", "views", "io"]

__version__ = "0.1.0"
