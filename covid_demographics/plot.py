#!/usr/bin/env python3
"""Plotting Utilities for the COVID-19 Demographics Analysis.

One scatter plot per regression pair, with the fitted least-squares line
overlaid. Plots are saved to the figures directory in PDF format.

Functions:
    create_regression_plot: Scatter plot of one (x, y) pair with its fitted line.
    create_regression_plots: All pairs of a report.

Usage:
    >>> from covid_demographics.plot import create_regression_plots
    >>> create_regression_plots(snapshot, reports)
"""

from pathlib import Path
from typing import List, Sequence, Union

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

from covid_demographics.analysis import RegressionReport, label, usable_rows
from covid_demographics.paths import FIGURES_DIR

# Plotting parameters
DPI = 300
FIGSIZE = (10, 7)
POINT_COLOR = 'lightblue'
LINE_COLOR = 'red'


def plot_filename(report: RegressionReport) -> str:
    return f"{report.y}_vs_{report.x}.pdf"


def create_regression_plot(df: pd.DataFrame, report: RegressionReport,
                           figures_dir: Union[str, Path] = FIGURES_DIR) -> Path:
    """Create a scatter plot of report.y against report.x with the fitted line.

    Only rows where both variables are present are drawn, the same rows the
    regression was fitted on.

    Args:
        df: Snapshot table.
        report: Fitted regression for the pair.
        figures_dir: Output directory.

    Returns:
        Path of the saved PDF.
    """
    figures_dir = Path(figures_dir)
    figures_dir.mkdir(parents=True, exist_ok=True)
    rows = usable_rows(df, report.x, report.y)

    plt.style.use('default')
    sns.set_palette("husl")

    plt.figure(figsize=FIGSIZE)
    plt.scatter(rows[report.x], rows[report.y], c=POINT_COLOR, alpha=0.6, edgecolor='k')

    if report.fitted:
        x_line = np.linspace(rows[report.x].min(), rows[report.x].max(), 100)
        plt.plot(x_line, report.predict(x_line), color=LINE_COLOR, alpha=0.7,
                 label=f'y = {report.slope:.3g}x + {report.intercept:.3g}')
        plt.legend()
        plt.title(f'$R^2$ = {report.r_squared:.2f}, p = {report.p_value:.2g}, n = {report.n}')
    else:
        plt.title(f'No fit: {report.note}')

    plt.suptitle(f'{label(report.y)} by {label(report.x)}', fontsize=16)
    plt.xlabel(label(report.x))
    plt.ylabel(label(report.y))
    plt.grid(True, linestyle='--', alpha=0.5)
    plt.tight_layout()

    output_file = figures_dir / plot_filename(report)
    plt.savefig(output_file, dpi=DPI, bbox_inches='tight')
    plt.close()
    return output_file


def create_regression_plots(df: pd.DataFrame, reports: Sequence[RegressionReport],
                            figures_dir: Union[str, Path] = FIGURES_DIR) -> List[Path]:
    """Create one plot per regression report."""
    print("Creating regression plots...")
    saved = [create_regression_plot(df, report, figures_dir) for report in reports]
    print(f"Regression plots saved to {figures_dir}")
    return saved
