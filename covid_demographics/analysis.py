#!/usr/bin/env python3
"""Regression Analysis Module.

Fits simple linear regressions y ~ x between pairs of snapshot variables
(cumulative cases and deaths, deaths per 100k people, population density,
median age and life expectancy) and formats the results for reading.

Rows where either variable of a pair is missing (for example deaths_per_100k
for a country without population data) are left out of that pair only.

Example:
    >>> from covid_demographics.analysis import fit_regression
    >>> report = fit_regression(snapshot, 'median_age', 'deaths_per_100k')
    >>> print(f"R² = {report.r_squared:.3f}, p = {report.p_value:.2g}")

Constants:
    DEFAULT_PAIRS: The (x, y) variable pairs of the report.
    VARIABLE_LABELS: Human-readable axis labels.
"""

from dataclasses import asdict, dataclass
from typing import List, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy.stats import linregress

DEFAULT_PAIRS: List[Tuple[str, str]] = [
    ('cases', 'deaths'),
    ('density', 'deaths_per_100k'),
    ('median_age', 'deaths_per_100k'),
    ('life_expectancy', 'deaths_per_100k'),
    ('median_age', 'life_expectancy'),
]

VARIABLE_LABELS = {
    'cases': 'Cumulative cases',
    'deaths': 'Cumulative deaths',
    'deaths_per_100k': 'Deaths per 100k people',
    'population_thousands': 'Population (thousands)',
    'density': 'Population density (persons per km²)',
    'median_age': 'Median age (years)',
    'life_expectancy': 'Life expectancy at birth (years)',
}

MIN_OBSERVATIONS = 3


@dataclass
class RegressionReport:
    """Result of one univariate least-squares fit y = slope * x + intercept."""
    x: str
    y: str
    n: int
    slope: float = np.nan
    intercept: float = np.nan
    r_squared: float = np.nan
    p_value: float = np.nan  # two-sided, H0: slope = 0
    stderr: float = np.nan  # standard error of the slope
    note: str = ''

    @property
    def fitted(self) -> bool:
        return not np.isnan(self.slope)

    def predict(self, x_values) -> np.ndarray:
        return self.slope * np.asarray(x_values, dtype=float) + self.intercept

    def to_dict(self) -> dict:
        return asdict(self)


def label(variable: str) -> str:
    return VARIABLE_LABELS.get(variable, variable)


def usable_rows(df: pd.DataFrame, x: str, y: str) -> pd.DataFrame:
    """Rows of df where both x and y are finite numbers."""
    for col in (x, y):
        if col not in df.columns:
            raise ValueError(f"Column {col!r} not in table (columns: {list(df.columns)})")
    values = df[[x, y]].apply(pd.to_numeric, errors='coerce')
    mask = np.isfinite(values.to_numpy(dtype=float, na_value=np.nan)).all(axis=1)
    return df.loc[mask]


def fit_regression(df: pd.DataFrame, x: str, y: str) -> RegressionReport:
    """Fit y ~ x by ordinary least squares.

    Args:
        df: Table holding columns x and y.
        x: Name of the explanatory variable.
        y: Name of the response variable.

    Returns:
        RegressionReport with slope, intercept, R², slope p-value and standard
        error. When the fit is impossible (fewer than MIN_OBSERVATIONS usable
        rows, or a constant x) the statistics are NaN and `note` says why.
    """
    rows = usable_rows(df, x, y)
    n = len(rows)
    if n < MIN_OBSERVATIONS:
        return RegressionReport(x, y, n, note=f"only {n} usable rows, need {MIN_OBSERVATIONS}")

    x_values = rows[x].to_numpy(dtype=float)
    y_values = rows[y].to_numpy(dtype=float)
    if np.ptp(x_values) == 0:
        return RegressionReport(x, y, n, note=f"{x} is constant")

    result = linregress(x_values, y_values)
    return RegressionReport(
        x=x,
        y=y,
        n=n,
        slope=float(result.slope),
        intercept=float(result.intercept),
        r_squared=float(result.rvalue ** 2),
        p_value=float(result.pvalue),
        stderr=float(result.stderr),
    )


def run_regressions(df: pd.DataFrame,
                    pairs: Sequence[Tuple[str, str]] = DEFAULT_PAIRS) -> List[RegressionReport]:
    """Fit every (x, y) pair on the same table."""
    return [fit_regression(df, x, y) for x, y in pairs]


def reports_to_frame(reports: Sequence[RegressionReport]) -> pd.DataFrame:
    return pd.DataFrame([report.to_dict() for report in reports])


def format_report(report: RegressionReport) -> str:
    """Human-readable summary of one regression."""
    lines = [f"{label(report.y)} ~ {label(report.x)}  (n = {report.n})"]
    if not report.fitted:
        lines.append(f"  not fitted: {report.note}")
        return "\n".join(lines)
    lines += [
        f"  y = {report.slope:.6g} x + {report.intercept:.6g}",
        f"  R²: {report.r_squared:.4f}",
        f"  slope p-value: {report.p_value:.4g} (std. error {report.stderr:.4g})",
    ]
    return "\n".join(lines)


def print_summary(reports: Sequence[RegressionReport]) -> None:
    print("=" * 80)
    print("REGRESSION SUMMARIES")
    print("=" * 80)
    for report in reports:
        print(format_report(report))
        print("-" * 80)
