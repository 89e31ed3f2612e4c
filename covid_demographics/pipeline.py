#!/usr/bin/env python3
"""
Pipeline entry points.

    run_pipeline(config) -> PipelineResult(joined, diagnostics, reports)

downloads the inputs, builds the reference-date snapshot and fits the
regressions. build_snapshot does the same from tables already in memory and
touches neither the network nor the filesystem.
"""

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import pandas as pd
import requests

from covid_demographics.acquisition import DataAcquirer
from covid_demographics.analysis import DEFAULT_PAIRS, RegressionReport, run_regressions
from covid_demographics.config import CountryNameMap, PipelineConfig
from covid_demographics.errors import Diagnostic
from covid_demographics.plot import create_regression_plots
from covid_demographics.preprocess import DataProcessor


@dataclass
class PipelineResult:
    """Everything one run produces."""
    joined: pd.DataFrame  # one row per country on the reference date
    diagnostics: List[Diagnostic] = field(default_factory=list)
    reports: List[RegressionReport] = field(default_factory=list)
    timeseries: Optional[pd.DataFrame] = None  # joined table over all dates
    figures: List[Path] = field(default_factory=list)

    @property
    def reference_date(self) -> Optional[pd.Timestamp]:
        return None if self.joined.empty else self.joined['date'].iloc[0]

    def diagnostics_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [d.to_dict() for d in self.diagnostics],
            columns=['category', 'message', 'count', 'countries']
        )


def build_snapshot(cases_raw: pd.DataFrame, deaths_raw: pd.DataFrame,
                   demographics_raw: pd.DataFrame,
                   config: PipelineConfig = None,
                   name_map: CountryNameMap = None,
                   verbose: bool = False) -> Tuple[pd.DataFrame, pd.DataFrame, List[Diagnostic]]:
    """
    Build the reference-date snapshot from raw tables.

    Args:
        cases_raw: JHU confirmed-cases table (wide)
        deaths_raw: JHU deaths table (wide)
        demographics_raw: UN WPP demographic indicators
        config: Pipeline configuration (defaults if None)
        name_map: Country-name corrections (loaded from config if None)
        verbose: Whether to print progress

    Returns:
        (snapshot, timeseries, diagnostics)
    """
    config = config or PipelineConfig()
    if name_map is None:
        name_map = config.load_country_names()
    processor = DataProcessor(
        name_map=name_map,
        reference_year=config.analysis.reference_year,
        reference_date=config.analysis.reference_date,
        verbose=verbose
    )
    snapshot, timeseries = processor.run_all_processing(cases_raw, deaths_raw, demographics_raw)
    return snapshot, timeseries, processor.diagnostics


def run_pipeline(config: PipelineConfig = None,
                 pairs: Sequence[Tuple[str, str]] = DEFAULT_PAIRS,
                 plot: bool = True,
                 session: Optional[requests.Session] = None,
                 cancel_event: Optional[threading.Event] = None,
                 verbose: bool = True) -> PipelineResult:
    """
    Run the whole analysis: acquire, process, fit and (optionally) plot.

    Args:
        config: Pipeline configuration (defaults if None)
        pairs: (x, y) variable pairs to regress
        plot: Whether to save scatter plots to config.figures_dir
        session: HTTP session to download with
        cancel_event: Event that aborts the downloads when set
        verbose: Whether to print progress

    Returns:
        PipelineResult

    Raises:
        AcquisitionError: If a source cannot be fetched or read
        ParseError: If a source has an unexpected structure
    """
    config = config or PipelineConfig()
    name_map = config.load_country_names()

    with DataAcquirer(config.sources, session=session,
                      cancel_event=cancel_event, verbose=verbose) as acquirer:
        raw = acquirer.fetch_all()

    snapshot, timeseries, diagnostics = build_snapshot(
        raw['cases'], raw['deaths'], raw['demographics'],
        config=config, name_map=name_map, verbose=verbose
    )
    reports = run_regressions(snapshot, pairs)

    figures = []
    if plot:
        figures = create_regression_plots(snapshot, reports, config.figures_dir)

    return PipelineResult(
        joined=snapshot,
        diagnostics=diagnostics,
        reports=reports,
        timeseries=timeseries,
        figures=figures
    )
