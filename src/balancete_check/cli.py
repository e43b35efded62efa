# Balancete Check - Parametrization consistency engine for accounting offices
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Command-Line Interface (CLI) for Balancete Check.

This module wires together the main building blocks of Balancete Check:

- global configuration (database, validation options, display options),
- chart of accounts, parametrization and trial balance imports,
- the multi-period validation engine,
- view helpers (findings, balance equation, statements).

The CLI is intentionally thin: it does not implement accounting logic
itself. It orchestrates the underlying modules based on command-line
arguments and the configuration file.


Subcommands
-----------

- ``init``:
    Create the SQLite database and its schema.

- ``import-chart [CSV]``:
    Replace the chart of accounts. Without a path, the file configured in
    ``[paths].chart_of_accounts`` is used.

- ``import-mapping CSV [--company ID]``:
    Import parametrization links (trial balance code -> chart node).

- ``import-balancete CSV --company ID --year YYYY --month MM``:
    Import (or replace) one monthly trial balance.

- ``balancetes [--company ID]``:
    List imported trial balances with their parametrization status
    and coverage (share of lines linked to a chart node).

- ``delete-balancete --company ID --year YYYY --month MM``:
    Delete one imported trial balance and its lines.

- ``unmapped --company ID --year YYYY --month MM``:
    List the lines of one trial balance not linked to any chart node yet.

- ``validate --company ID --year YYYY [--year YYYY ...]``:
    Run the hierarchy and balance equation checks over every eligible
    month and render the findings. The exit code is 0 only when nothing
    was flagged over the whole range, 1 otherwise.

- ``statement --company ID --year YYYY --month MM [--breakdown CODE]``:
    Render the parametrized balancete of one month, optionally with the
    child-by-child breakdown of one mother account.


Configuration
-------------

By default, the CLI reads ``balancete_check_config.toml`` from the current
working directory. Use ``--config PATH`` to point to another file.


Display modes
-------------

``[display].mode`` (or ``--display-mode``) controls where results go:

- ``table``: console tables (pandas.DataFrame.to_string),
- ``csv``:   CSV files only, written to ``[display].output_dir`` or
             ``--output DIR``, named ``<kind>_YYYY-MM-DD-HH-MM-SS.csv``,
- ``both``:  console tables and CSV files.
"""

import argparse
import logging
import sys
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

import pandas as pd

from . import __version__
from .accounts import ChartOfAccounts, DataIntegrityError, load_chart_of_accounts
from .config import AppConfig, load_app_config
from .db import (
    DatabaseSource,
    delete_trial_balance,
    import_parametrization_links,
    import_trial_balance,
    init_database,
    list_trial_balances,
    list_unmapped_lines,
    replace_chart_of_accounts,
)
from .db import load_chart_of_accounts as db_load_chart_of_accounts
from .db import load_parametrization_links as db_load_parametrization_links
from .db import load_trial_balance_lines
from .engine import ValueCalculator
from .io import read_trial_balance
from .mapping import ParametrizationMap, load_parametrization_links
from .multi_periods import run_validation_years
from .views import (
    balance_findings_to_dataframe,
    build_balancete_statement,
    build_inconsistency_breakdown,
    findings_to_dataframe,
    issues_to_dataframe,
    summarize_run,
)

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for the CLI."""
    ap = argparse.ArgumentParser(
        prog="balancete-check",
        description=(
            "Balancete Check - Parametrization consistency engine for "
            "accounting offices. Imports charts of accounts, parametrization "
            "links and monthly trial balances, then checks that every mother "
            "account equals the sum of its children and that the balance "
            "equation holds."
        ),
    )

    # Generic options
    ap.add_argument(
        "--version",
        action="store_true",
        help="Show the installed version of balancete_check and exit.",
    )
    ap.add_argument(
        "--config",
        dest="config_path",
        help=(
            "Path to the main TOML configuration file. If omitted, "
            "'balancete_check_config.toml' in the current directory is used."
        ),
    )
    ap.add_argument(
        "--log-level",
        dest="log_level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override the [logging].level setting from the configuration file.",
    )

    subparsers = ap.add_subparsers(dest="command", metavar="command")

    subparsers.add_parser("init", help="Create the database and its schema.")

    # import-chart
    chart_parser = subparsers.add_parser(
        "import-chart", help="Replace the chart of accounts from a CSV file."
    )
    chart_parser.add_argument(
        "path",
        nargs="?",
        help=(
            "Chart of accounts CSV. Defaults to [paths].chart_of_accounts "
            "from the configuration."
        ),
    )

    # import-mapping
    mapping_parser = subparsers.add_parser(
        "import-mapping", help="Import parametrization links from a CSV file."
    )
    mapping_parser.add_argument("path", help="Parametrization CSV file.")
    mapping_parser.add_argument(
        "--company",
        dest="company_id",
        help=(
            "Company identifier (CNPJ). Required if the file has no company "
            "column; otherwise only this company's rows are imported."
        ),
    )

    # import-balancete
    tb_parser = subparsers.add_parser(
        "import-balancete", help="Import one monthly trial balance (CSV)."
    )
    tb_parser.add_argument("path", help="Trial balance CSV file.")
    tb_parser.add_argument("--company", dest="company_id", required=True)
    tb_parser.add_argument("--company-name", dest="company_name", default="")
    tb_parser.add_argument("--year", type=int, required=True)
    tb_parser.add_argument("--month", type=int, required=True)

    # balancetes
    list_parser = subparsers.add_parser(
        "balancetes", help="List imported trial balances and their status."
    )
    list_parser.add_argument("--company", dest="company_id")

    # delete-balancete
    delete_parser = subparsers.add_parser(
        "delete-balancete", help="Delete one imported trial balance."
    )
    delete_parser.add_argument("--company", dest="company_id", required=True)
    delete_parser.add_argument("--year", type=int, required=True)
    delete_parser.add_argument("--month", type=int, required=True)

    # unmapped
    unmapped_parser = subparsers.add_parser(
        "unmapped",
        help="List the trial balance lines of one month not linked yet.",
    )
    unmapped_parser.add_argument("--company", dest="company_id", required=True)
    unmapped_parser.add_argument("--year", type=int, required=True)
    unmapped_parser.add_argument("--month", type=int, required=True)
    _add_display_arguments(unmapped_parser)

    # validate
    validate_parser = subparsers.add_parser(
        "validate", help="Run the consistency checks for one or more years."
    )
    validate_parser.add_argument("--company", dest="company_id", required=True)
    validate_parser.add_argument(
        "--year",
        dest="years",
        type=int,
        action="append",
        required=True,
        help="Fiscal year to validate. Repeat to validate several years.",
    )
    validate_parser.add_argument(
        "--tolerance",
        help=(
            "Largest absolute difference still considered consistent. "
            "Overrides [validation].tolerance."
        ),
    )
    validate_parser.add_argument(
        "--only-inconsistent",
        action="store_true",
        help="Only render inconsistent hierarchy findings.",
    )
    _add_display_arguments(validate_parser)

    # statement
    statement_parser = subparsers.add_parser(
        "statement", help="Render the parametrized balancete of one month."
    )
    statement_parser.add_argument("--company", dest="company_id", required=True)
    statement_parser.add_argument("--year", type=int, required=True)
    statement_parser.add_argument("--month", type=int, required=True)
    statement_parser.add_argument(
        "--breakdown",
        metavar="CODE",
        help="Also show the child-by-child breakdown of this mother account.",
    )
    _add_display_arguments(statement_parser)

    return ap


def _add_display_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--display-mode",
        dest="display_mode",
        choices=["table", "csv", "both"],
        help=(
            "Override the display.mode setting from the configuration file. "
            "'table' prints results to stdout, "
            "'csv' writes CSV files only, "
            "'both' does both."
        ),
    )
    parser.add_argument(
        "--output",
        dest="output_dir",
        help=(
            "Output directory where CSV files will be written when display "
            "mode includes 'csv'. Defaults to [display].output_dir."
        ),
    )


def _render(
    frames: list[tuple[str, str, pd.DataFrame]],
    args: argparse.Namespace,
    config: AppConfig,
) -> None:
    """Print and/or export (title, file prefix, DataFrame) triples."""
    display_mode = args.display_mode or config.display.mode

    if display_mode in {"table", "both"}:
        for title, _, df in frames:
            print()
            print(f"=== {title} ===")
            if df.empty:
                print("(no rows)")
            else:
                print(df.to_string(index=False))

    if display_mode in {"csv", "both"}:
        output_dir = config.display.output_dir
        if args.output_dir:
            output_dir = Path(args.output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y-%m-%d-%H-%M-%S")
        for _, prefix, df in frames:
            path = output_dir / f"{prefix}_{timestamp}.csv"
            df.to_csv(path, index=False)
            print(f"Wrote {path} ({len(df)} rows)")


def _handle_import_chart(
    args: argparse.Namespace, config: AppConfig, parser: argparse.ArgumentParser
) -> int:
    path = Path(args.path) if args.path else config.chart_of_accounts
    if path is None:
        parser.error(
            "No chart of accounts configured. Either set [paths].chart_of_accounts "
            "or pass the CSV path to 'import-chart'."
        )
    if not path.is_file():
        parser.error(f"Chart of accounts file not found: {path}")

    nodes = load_chart_of_accounts(str(path))
    # Rejects duplicates and orphans before anything is written.
    ChartOfAccounts(nodes)
    count = replace_chart_of_accounts(config.database, nodes)
    print(f"Chart of accounts replaced from {path}: {count} accounts.")
    return 0


def _handle_import_mapping(
    args: argparse.Namespace, config: AppConfig, parser: argparse.ArgumentParser
) -> int:
    path = Path(args.path)
    if not path.is_file():
        parser.error(f"Parametrization file not found: {path}")

    try:
        links = load_parametrization_links(str(path), company_id=args.company_id)
        count = import_parametrization_links(config.database, links)
    except ValueError as exc:
        logger.error("Parametrization import failed: %s", exc)
        print(f"Error while importing {path}: {exc}")
        return 2
    print(f"Imported {count} parametrization links from {path}.")
    return 0


def _handle_import_balancete(
    args: argparse.Namespace, config: AppConfig, parser: argparse.ArgumentParser
) -> int:
    path = Path(args.path)
    if not path.is_file():
        parser.error(f"Trial balance file not found: {path}")

    try:
        df = read_trial_balance(path)
        result = import_trial_balance(
            config.database,
            df,
            company_id=args.company_id,
            company_name=args.company_name,
            year=args.year,
            month=args.month,
            source_label=str(path),
        )
    except ValueError as exc:
        logger.error("Trial balance import failed: %s", exc)
        print(f"Error while importing {path}: {exc}")
        return 2
    action = "Replaced" if result.replaced else "Imported"
    print(
        f"{action} trial balance {args.month:02d}/{args.year} for company "
        f"{args.company_id}: {result.lines_imported} lines, "
        f"status '{result.status}'."
    )
    return 0


def _handle_balancetes(args: argparse.Namespace, config: AppConfig) -> int:
    df = list_trial_balances(config.database, args.company_id)
    if df.empty:
        print("No trial balances found.")
        return 0
    print(df.to_string(index=False))
    return 0


def _handle_delete_balancete(args: argparse.Namespace, config: AppConfig) -> int:
    try:
        lines = delete_trial_balance(
            config.database, args.company_id, args.year, args.month
        )
    except ValueError as exc:
        print(f"Error: {exc}")
        return 2
    print(
        f"Deleted trial balance {args.month:02d}/{args.year} for company "
        f"{args.company_id} ({lines} lines)."
    )
    return 0


def _handle_unmapped(args: argparse.Namespace, config: AppConfig) -> int:
    try:
        df = list_unmapped_lines(
            config.database, args.company_id, args.year, args.month
        )
    except ValueError as exc:
        print(f"Error: {exc}")
        return 2

    _render(
        [
            (
                f"Unmapped lines {args.month:02d}/{args.year} - {args.company_id}",
                "unmapped_lines",
                df,
            )
        ],
        args,
        config,
    )
    return 0


def _handle_validate(
    args: argparse.Namespace, config: AppConfig, parser: argparse.ArgumentParser
) -> int:
    tolerance = config.validation.tolerance
    if args.tolerance is not None:
        try:
            tolerance = Decimal(args.tolerance)
        except InvalidOperation:
            parser.error(f"Invalid tolerance: {args.tolerance!r}")
        if not tolerance.is_finite() or tolerance < 0:
            parser.error("Tolerance must be a non-negative amount.")

    source = DatabaseSource(config.database, config.validation.eligible_statuses)
    run = run_validation_years(
        source,
        args.company_id,
        args.years,
        tolerance=tolerance,
        max_workers=config.validation.max_workers,
    )

    years_label = ", ".join(str(y) for y in sorted(set(args.years)))
    if run.is_empty:
        print(
            f"No eligible trial balance for company {args.company_id} in "
            f"{years_label} (nothing to validate)."
        )
        return 0

    findings = list(run.findings)
    if args.only_inconsistent:
        findings = [f for f in findings if not f.is_consistent]

    frames = [
        ("Hierarchy check", "hierarchy_findings", findings_to_dataframe(findings)),
        (
            "Balance equation",
            "balance_equation",
            balance_findings_to_dataframe(run.balance_findings),
        ),
    ]
    if run.issues:
        frames.append(
            (
                "Configuration issues",
                "configuration_issues",
                issues_to_dataframe(run.issues),
            )
        )
    _render(frames, args, config)

    summary = summarize_run(run)
    print()
    print(
        f"Months analysed: {summary.months_analysed} | "
        f"Accounts analysed: {summary.nodes_analysed} | "
        f"Inconsistent accounts: {summary.inconsistent_nodes} | "
        f"Inconsistent months: {summary.inconsistent_months}"
    )
    if summary.is_fully_consistent:
        print("All validated periods are consistent.")
        return 0
    print("Inconsistencies found.")
    return 1


def _handle_statement(
    args: argparse.Namespace, config: AppConfig, parser: argparse.ArgumentParser
) -> int:
    chart = ChartOfAccounts(db_load_chart_of_accounts(config.database))
    parametrization = ParametrizationMap(
        args.company_id,
        db_load_parametrization_links(config.database, args.company_id),
    )
    parametrization.check_against(chart)
    lines = load_trial_balance_lines(
        config.database, args.company_id, args.year, args.month
    )
    if not lines:
        print(
            f"No trial balance for company {args.company_id} in "
            f"{args.month:02d}/{args.year}."
        )
        return 0

    calculator = ValueCalculator(chart, parametrization, lines)
    frames = [
        (
            f"Balancete {args.month:02d}/{args.year} - {args.company_id}",
            "balancete_statement",
            build_balancete_statement(calculator),
        )
    ]

    if args.breakdown:
        if args.breakdown not in chart:
            parser.error(f"Unknown chart code for --breakdown: {args.breakdown!r}")
        frames.append(
            (
                f"Breakdown of {args.breakdown}",
                "breakdown",
                build_inconsistency_breakdown(calculator, args.breakdown),
            )
        )

    _render(frames, args, config)
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the Balancete Check CLI.

    This function parses command-line arguments, loads the application
    configuration, configures logging, initializes the database and
    dispatches to the requested subcommand.

    Returns the process exit code: 0 on success, 1 when the validation found
    inconsistencies, 2 when the data is not fit for validation.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    # --version: short-circuit and exit early.
    if args.version:
        print(f"balancete_check version {__version__}")
        return 0

    if args.command is None:
        parser.print_help()
        return 0

    # 1) Load application configuration
    if args.config_path:
        config = load_app_config(args.config_path)
    else:
        config = load_app_config()

    logging.basicConfig(
        level=args.log_level or config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # 2) Initialize the database (create file and schema if needed)
    init_database(config.database)

    command = args.command
    try:
        if command == "init":
            print(f"Database ready at {config.database.path}")
            return 0
        if command == "import-chart":
            return _handle_import_chart(args, config, parser)
        if command == "import-mapping":
            return _handle_import_mapping(args, config, parser)
        if command == "import-balancete":
            return _handle_import_balancete(args, config, parser)
        if command == "balancetes":
            return _handle_balancetes(args, config)
        if command == "delete-balancete":
            return _handle_delete_balancete(args, config)
        if command == "unmapped":
            return _handle_unmapped(args, config)
        if command == "validate":
            return _handle_validate(args, config, parser)
        if command == "statement":
            return _handle_statement(args, config, parser)
    except DataIntegrityError as exc:
        logger.error("Data integrity error: %s", exc)
        print(f"Error: {exc}")
        return 2

    parser.error(f"Unknown command: {command}")
    return 2


if __name__ == "__main__":
    sys.exit(main())
