# Balancete Check - Parametrization consistency engine for accounting offices
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Multi-period orchestration of the consistency checks.

This module provides the high-level entry point used to validate every
eligible month of a company's fiscal year in a single call.

Overview
--------
``run_validation()`` performs all required steps:

1. Asks the data source which months of the year are eligible
   (trial balances "parametrizado" or "parametrizando"). No eligible month
   means an empty result, not an error.

2. Loads the chart of accounts and the company's parametrization *once*
   for the whole run, and checks that every link targets a chart code
   that exists (DataIntegrityError otherwise).

3. For each eligible month, on a small thread pool:
   - fetches that month's trial-balance lines (and only those),
   - builds a ValueCalculator bound to this month,
   - runs the hierarchy check and the balance equation check.

4. Joins the per-month results in month order into a ValidationRun.

Failure semantics
-----------------
- A failure while fetching or validating any month propagates to the
  caller: the whole run fails and no partial result is returned.
- A ``threading.Event`` can be passed as ``cancel_event``; once set, months
  not yet started are skipped and ValidationCancelled is raised.

Caching
-------
No state is kept at module level. Callers that want to reuse results
(e.g. a UI re-rendering the same filters) pass their own ValidationCache.
Entries are keyed by (company, year, tolerance); callers are responsible
for invalidating a company after importing data or editing its
parametrization.
"""

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Protocol

from .accounts import ChartNode, ChartOfAccounts
from .engine import ValueCalculator
from .io import TrialBalanceLine
from .mapping import ParametrizationLink, ParametrizationMap
from .periods import Period
from .validation import (
    DEFAULT_TOLERANCE,
    BalanceEquationFinding,
    ConfigurationIssue,
    ValidationFinding,
    validate_balance_equation,
    validate_hierarchy,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4


class ValidationCancelled(RuntimeError):
    """Raised when a validation run is aborted through its cancel event."""


class ValidationSource(Protocol):
    """Read interface the orchestrator needs from its collaborators."""

    def get_chart_of_accounts(self) -> list[ChartNode]: ...

    def get_parametrization_links(
        self, company_id: str
    ) -> list[ParametrizationLink]: ...

    def get_trial_balance_lines(
        self, company_id: str, year: int, month: int
    ) -> list[TrialBalanceLine]: ...

    def get_eligible_periods(self, company_id: str, year: int) -> list[int]: ...


@dataclass(frozen=True)
class MonthResult:
    """Findings of one validated month."""

    period: Period
    findings: tuple[ValidationFinding, ...]
    balance_finding: BalanceEquationFinding
    issues: tuple[ConfigurationIssue, ...]


@dataclass(frozen=True)
class ValidationRun:
    """
    Result of validating one company over one or more fiscal years.

    Attributes
    ----------
    company_id :
        Validated company.
    periods :
        Validated months, in chronological order.
    findings :
        Hierarchy findings, month by month (deepest level first within a
        month).
    balance_findings :
        One balance equation finding per validated month.
    issues :
        Configuration gaps found along the way (e.g. missing roots).
    """

    company_id: str
    periods: tuple[Period, ...] = field(default_factory=tuple)
    findings: tuple[ValidationFinding, ...] = field(default_factory=tuple)
    balance_findings: tuple[BalanceEquationFinding, ...] = field(
        default_factory=tuple
    )
    issues: tuple[ConfigurationIssue, ...] = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return not self.periods


class ValidationCache:
    """Thread-safe LRU cache of validation runs, owned by the caller."""

    def __init__(self, max_size: int = 64):
        self._entries: OrderedDict = OrderedDict()
        self._lock = threading.RLock()
        self.max_size = max_size
        self.hits = 0
        self.misses = 0

    @staticmethod
    def make_key(company_id: str, year: int, tolerance: Decimal) -> tuple:
        return (company_id, int(year), str(tolerance))

    def get(self, key: tuple) -> Optional[ValidationRun]:
        with self._lock:
            if key not in self._entries:
                self.misses += 1
                return None
            self._entries.move_to_end(key)
            self.hits += 1
            return self._entries[key]

    def put(self, key: tuple, run: ValidationRun) -> None:
        with self._lock:
            self._entries[key] = run
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)

    def invalidate(self, company_id: Optional[str] = None) -> None:
        """Drop every entry, or only the entries of one company."""
        with self._lock:
            if company_id is None:
                self._entries.clear()
                return
            for key in [k for k in self._entries if k[0] == company_id]:
                del self._entries[key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def validate_month(
    source: ValidationSource,
    chart: ChartOfAccounts,
    parametrization: ParametrizationMap,
    period: Period,
    tolerance: Decimal = DEFAULT_TOLERANCE,
    cancel_event: Optional[threading.Event] = None,
) -> MonthResult:
    """Fetch one month of trial-balance lines and run both checks on it."""
    if cancel_event is not None and cancel_event.is_set():
        raise ValidationCancelled(
            f"Validation cancelled before {period.label} was processed."
        )

    company_id = parametrization.company_id
    started = time.perf_counter()

    lines = source.get_trial_balance_lines(company_id, period.year, period.month)
    calculator = ValueCalculator(chart, parametrization, lines)

    findings = validate_hierarchy(
        calculator, company_id, period.year, period.month, tolerance
    )
    balance_finding, issues = validate_balance_equation(
        calculator, company_id, period.year, period.month, tolerance
    )

    logger.debug(
        "Validated company %s %s: %d lines, %d findings in %.3fs.",
        company_id,
        period.label,
        len(lines),
        len(findings),
        time.perf_counter() - started,
    )
    return MonthResult(
        period=period,
        findings=tuple(findings),
        balance_finding=balance_finding,
        issues=tuple(issues),
    )


def run_validation(
    source: ValidationSource,
    company_id: str,
    year: int,
    *,
    tolerance: Decimal = DEFAULT_TOLERANCE,
    max_workers: int = DEFAULT_MAX_WORKERS,
    cache: Optional[ValidationCache] = None,
    cancel_event: Optional[threading.Event] = None,
) -> ValidationRun:
    """
    Validate every eligible month of a company's fiscal year.

    Parameters
    ----------
    source :
        Data source implementing ValidationSource (database adapter,
        in-memory fixture, ...).
    company_id :
        Company to validate.
    year :
        Fiscal year.
    tolerance :
        Maximum absolute difference still considered consistent.
    max_workers :
        Size of the thread pool used to fetch and validate months.
    cache :
        Optional caller-owned cache of previous runs.
    cancel_event :
        Optional event; when set, pending months are abandoned and
        ValidationCancelled is raised.

    Returns
    -------
    ValidationRun
        Empty (no periods, no findings) if the company has no eligible
        month for the year.

    Raises
    ------
    DataIntegrityError
        If the catalog or the parametrization is inconsistent.
    ValidationCancelled
        If ``cancel_event`` was set during the run.
    Exception
        Any error raised by the source is propagated unchanged.
    """
    key = ValidationCache.make_key(company_id, year, tolerance)
    if cache is not None:
        cached = cache.get(key)
        if cached is not None:
            logger.debug("Cache hit for company %s, year %s.", company_id, year)
            return cached

    months = sorted(set(source.get_eligible_periods(company_id, year)))
    if not months:
        logger.info(
            "Company %s has no eligible trial balance for %s.", company_id, year
        )
        run = ValidationRun(company_id=company_id)
        if cache is not None:
            cache.put(key, run)
        return run

    # Shared, read-only for the rest of the run.
    chart = ChartOfAccounts(source.get_chart_of_accounts())
    parametrization = ParametrizationMap(
        company_id, source.get_parametrization_links(company_id)
    )
    parametrization.check_against(chart)

    periods = [Period(year, m) for m in months]
    workers = max(1, min(max_workers, len(periods)))

    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [
            executor.submit(
                validate_month,
                source,
                chart,
                parametrization,
                period,
                tolerance,
                cancel_event,
            )
            for period in periods
        ]
        try:
            # Collected in submission order, i.e. month order.
            results = [future.result() for future in futures]
        except BaseException:
            for future in futures:
                future.cancel()
            raise

    run = _assemble(company_id, results)
    logger.info(
        "Validated company %s for %s: %d month(s), %d finding(s), "
        "%d inconsistent.",
        company_id,
        year,
        len(run.periods),
        len(run.findings),
        sum(1 for f in run.findings if not f.is_consistent),
    )

    if cache is not None:
        cache.put(key, run)
    return run


def run_validation_years(
    source: ValidationSource,
    company_id: str,
    years: Iterable[int],
    *,
    tolerance: Decimal = DEFAULT_TOLERANCE,
    max_workers: int = DEFAULT_MAX_WORKERS,
    cache: Optional[ValidationCache] = None,
    cancel_event: Optional[threading.Event] = None,
) -> ValidationRun:
    """Validate several fiscal years and merge them into one run."""
    runs: list[ValidationRun] = []
    for year in sorted(set(years)):
        if cancel_event is not None and cancel_event.is_set():
            raise ValidationCancelled(f"Validation cancelled before year {year}.")
        runs.append(
            run_validation(
                source,
                company_id,
                year,
                tolerance=tolerance,
                max_workers=max_workers,
                cache=cache,
                cancel_event=cancel_event,
            )
        )

    return ValidationRun(
        company_id=company_id,
        periods=tuple(p for r in runs for p in r.periods),
        findings=tuple(f for r in runs for f in r.findings),
        balance_findings=tuple(b for r in runs for b in r.balance_findings),
        issues=tuple(i for r in runs for i in r.issues),
    )


def _assemble(company_id: str, results: list[MonthResult]) -> ValidationRun:
    ordered = sorted(results, key=lambda r: r.period)
    return ValidationRun(
        company_id=company_id,
        periods=tuple(r.period for r in ordered),
        findings=tuple(f for r in ordered for f in r.findings),
        balance_findings=tuple(r.balance_finding for r in ordered),
        issues=tuple(i for r in ordered for i in r.issues),
    )
