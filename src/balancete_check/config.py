# Balancete Check - Parametrization consistency engine for accounting offices
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Configuration helpers for Balancete Check.

This module is responsible for:
- loading the main application configuration from a TOML file,
- validating the consistency-check options (tolerance, workers, statuses),
- exposing typed dataclasses used by the rest of the application.
"""

import tomllib
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Optional

from .db import DatabaseConfig
from .mapping import TRIAL_BALANCE_STATUSES
from .multi_periods import DEFAULT_MAX_WORKERS
from .periods import ELIGIBLE_STATUSES
from .validation import DEFAULT_TOLERANCE

DEFAULT_CONFIG_FILE = "balancete_check_config.toml"

DISPLAY_MODES = ("table", "csv", "both")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class ValidationConfig:
    """
    Options of the consistency checks.

    Attributes
    ----------
    tolerance:
        Largest absolute difference still considered consistent.
    max_workers:
        Size of the thread pool used to validate months.
    eligible_statuses:
        Trial balance statuses that allow a month to be validated.
    """

    tolerance: Decimal
    max_workers: int
    eligible_statuses: tuple[str, ...]


@dataclass(frozen=True)
class DisplayConfig:
    """Display options for the CLI (console tables and/or CSV files)."""

    mode: str
    output_dir: Path


@dataclass(frozen=True)
class AppConfig:
    """
    Application-wide configuration for Balancete Check.

    This aggregates:
    - the database configuration (where charts, links and trial balances
      are stored),
    - the validation options,
    - the default chart of accounts file,
    - display and logging options.
    """

    database: DatabaseConfig
    validation: ValidationConfig
    chart_of_accounts: Optional[Path]
    display: DisplayConfig
    log_level: str


def _load_toml(path: Path) -> dict[str, Any]:
    """
    Load a TOML file and return its content as a dictionary.

    Raises:
        FileNotFoundError: if the file does not exist.
        ValueError: if the TOML content cannot be parsed or is not a table.
    """
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Failed to parse TOML config file: {path}") from exc

    if not isinstance(data, dict):
        raise ValueError(f"Invalid TOML root type in {path}, expected a table.")

    return data


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = raw.get(name) or {}
    if not isinstance(section, Mapping):
        return {}
    return section


def _parse_validation(section: Mapping[str, Any]) -> ValidationConfig:
    """
    Extract and validate the [validation] table.

    The tolerance may be written as a string ("0.01") or a number; strings
    are preferred since TOML floats are binary.

    Raises:
        ValueError: if a value is missing the expected type or range.
    """
    raw_tolerance = section.get("tolerance", str(DEFAULT_TOLERANCE))
    try:
        tolerance = Decimal(str(raw_tolerance))
    except InvalidOperation as exc:
        raise ValueError(
            f"Invalid value for 'validation.tolerance': {raw_tolerance!r}."
        ) from exc
    if not tolerance.is_finite() or tolerance < 0:
        raise ValueError(
            "'validation.tolerance' must be a non-negative amount, "
            f"got {raw_tolerance!r}."
        )

    raw_workers = section.get("max_workers", DEFAULT_MAX_WORKERS)
    try:
        max_workers = int(raw_workers)
    except (TypeError, ValueError) as exc:
        raise ValueError(
            "Invalid value for 'validation.max_workers' in the configuration. "
            "Expected an integer."
        ) from exc
    if max_workers < 1:
        raise ValueError("'validation.max_workers' must be at least 1.")

    raw_statuses = section.get("eligible_statuses", list(ELIGIBLE_STATUSES))
    if isinstance(raw_statuses, str) or not isinstance(raw_statuses, list):
        raise ValueError("'validation.eligible_statuses' must be a list of strings.")
    statuses = tuple(str(s).strip() for s in raw_statuses)
    unknown = [s for s in statuses if s not in TRIAL_BALANCE_STATUSES]
    if unknown:
        raise ValueError(
            f"Unknown trial balance status(es) in 'validation.eligible_statuses': "
            f"{', '.join(unknown)}. Expected: {', '.join(TRIAL_BALANCE_STATUSES)}."
        )

    return ValidationConfig(
        tolerance=tolerance,
        max_workers=max_workers,
        eligible_statuses=statuses,
    )


def load_app_config(config_path: Optional[str] = None) -> AppConfig:
    """
    Load the Balancete Check application configuration from a TOML file.

    Expected top-level sections in the TOML file
    --------------------------------------------
    [database]
        Database engine ("sqlite") and the SQLite file path.

    [validation]
        tolerance (string or number, default "0.01"), max_workers (default
        4) and eligible_statuses (default ["parametrizado",
        "parametrizando"]).

    [paths]
        chart_of_accounts: default chart of accounts CSV used by
        'import-chart' when no file is given on the command line.

    [display]
        mode ("table", "csv" or "both") and output_dir for CSV files.

    [logging]
        level (DEBUG, INFO, WARNING, ...).

    Every section is optional. All file paths in the TOML are resolved
    relative to the directory of the TOML file itself.

    Parameters
    ----------
    config_path : str, optional
        Path to the TOML configuration file. Defaults to
        'balancete_check_config.toml' in the current directory.

    Returns
    -------
    AppConfig
        Parsed and validated application configuration.

    Raises
    ------
    FileNotFoundError
        If the configuration file does not exist.
    ValueError
        If the file cannot be parsed or holds invalid values.
    """
    if config_path is None:
        config_file = Path(DEFAULT_CONFIG_FILE).resolve()
    else:
        config_file = Path(config_path).resolve()

    raw = _load_toml(config_file)
    base_dir = config_file.parent

    # 1) Database section
    database_section = _section(raw, "database")
    db_engine = str(database_section.get("engine") or "sqlite")
    db_path_raw = database_section.get("path") or "data/db/balancete_check.sqlite"
    database_config = DatabaseConfig(
        engine=db_engine, path=(base_dir / str(db_path_raw)).resolve()
    )

    # 2) Validation options
    validation_config = _parse_validation(_section(raw, "validation"))

    # 3) Paths
    paths_section = _section(raw, "paths")
    chart_raw = paths_section.get("chart_of_accounts")
    chart_of_accounts = (base_dir / str(chart_raw)).resolve() if chart_raw else None

    # 4) Display options
    display_section = _section(raw, "display")
    display_mode = str(display_section.get("mode", "table"))
    if display_mode not in DISPLAY_MODES:
        raise ValueError(
            f"Invalid value for 'display.mode': {display_mode!r}. "
            f"Expected one of: {', '.join(DISPLAY_MODES)}."
        )
    output_raw = display_section.get("output_dir") or "data/output"
    display_config = DisplayConfig(
        mode=display_mode, output_dir=(base_dir / str(output_raw)).resolve()
    )

    # 5) Logging
    logging_section = _section(raw, "logging")
    log_level = str(logging_section.get("level", "INFO")).upper()
    if log_level not in LOG_LEVELS:
        raise ValueError(
            f"Invalid value for 'logging.level': {log_level!r}. "
            f"Expected one of: {', '.join(LOG_LEVELS)}."
        )

    return AppConfig(
        database=database_config,
        validation=validation_config,
        chart_of_accounts=chart_of_accounts,
        display=display_config,
        log_level=log_level,
    )
