#!/usr/bin/env python3
"""
preprocess.py

Turns the three raw tables into one country-level snapshot:

1. JHU CSSE case and death time series (wide, one column per date)
   -> long (country, date, value) tables summed over provinces
2. UN WPP demographic indicators
   -> one demographic row per country for the reference year, with country
      names corrected to the JHU spelling
3. cases x deaths (inner, on country and date) x demographics (left, on country)
   -> filtered to the reference date, with deaths per 100k people

Every step returns a new DataFrame; inputs are never modified.
"""

import warnings
from datetime import date
from typing import List, Optional, Tuple, Type

import numpy as np
import pandas as pd

from covid_demographics.config import CountryNameMap
from covid_demographics.errors import (
    ComputationWarning, DataQualityWarning, Diagnostic,
    JoinIntegrityWarning, MissingDemographicsWarning, ParseError
)

# JHU CSSE time-series layout
ID_COLUMNS = ['Province/State', 'Country/Region', 'Lat', 'Long']
DATE_FORMAT = '%m/%d/%y'

# UN WPP column -> analysis column
DEMOGRAPHIC_COLUMNS = {
    'Location': 'country',
    'Time': 'year',
    'TPopulation1July': 'population_thousands',
    'PopDensity': 'density',
    'MedianAgePop': 'median_age',
    'LEx': 'life_expectancy',
}
DEMOGRAPHIC_FIELDS = ['population_thousands', 'density', 'median_age', 'life_expectancy']

JOIN_KEYS = ['country', 'date']


class DataProcessor:
    """Reshapes, reconciles and joins the case, death and demographic tables.

    Args:
        name_map: Demographic-to-JHU country-name corrections
        reference_year: Year of the demographic snapshot
        reference_date: Date of the case/death snapshot (None = latest in data)
        verbose: Whether to print progress
    """

    def __init__(self, name_map: CountryNameMap = None,
                 reference_year: int = 2019,
                 reference_date: Optional[date] = None,
                 verbose: bool = True):
        self.name_map = name_map or CountryNameMap()
        self.reference_year = reference_year
        self.reference_date = reference_date
        self.verbose = verbose
        self.diagnostics: List[Diagnostic] = []

    def _log(self, message: str) -> None:
        if self.verbose:
            print(message)

    def _report(self, category: Type[DataQualityWarning], message: str,
                countries: List[str], count: Optional[int] = None) -> None:
        """Record a non-fatal finding and emit it as a warning."""
        diagnostic = Diagnostic(category, message, countries, count)
        self.diagnostics.append(diagnostic)
        warnings.warn(message, category, stacklevel=3)

    # ------------------------------------------------------------------
    # Shape normalization and aggregation
    # ------------------------------------------------------------------

    @staticmethod
    def normalize_time_series(df: pd.DataFrame, value_name: str) -> pd.DataFrame:
        """
        Convert a wide JHU time series into long format.

        Args:
            df: Table with ID_COLUMNS followed by one M/D/YY column per date
            value_name: Name of the value column ('cases' or 'deaths')

        Returns:
            Long table with columns: country, province, date, <value_name>
        """
        missing = [col for col in ID_COLUMNS if col not in df.columns]
        if missing:
            raise ParseError(value_name, f"missing identifier columns {missing}")

        date_cols = [col for col in df.columns if col not in ID_COLUMNS]
        if not date_cols:
            raise ParseError(value_name, "no date columns")

        # Every header must be a M/D/YY date
        parsed = pd.to_datetime(pd.Series(date_cols, dtype=str), format=DATE_FORMAT, errors='coerce')
        bad_headers = [col for col, ts in zip(date_cols, parsed) if pd.isna(ts)]
        if bad_headers:
            raise ParseError(value_name, f"unparseable date headers {bad_headers[:5]}")
        header_dates = dict(zip(date_cols, parsed))

        # Every cell must be a whole number
        values = df[date_cols].apply(pd.to_numeric, errors='coerce')
        bad_cells = values.isna() | (values % 1 != 0)
        if bad_cells.any().any():
            row, col = next(zip(*np.nonzero(bad_cells.to_numpy())))
            raise ParseError(
                value_name,
                f"non-numeric value {df[date_cols].iat[row, col]!r} for "
                f"{df['Country/Region'].iat[row]} on {date_cols[col]} "
                f"({int(bad_cells.to_numpy().sum())} bad cells)"
            )

        wide = pd.concat([df[['Country/Region', 'Province/State']], values.astype('int64')], axis=1)
        long_df = pd.melt(
            wide,
            id_vars=['Country/Region', 'Province/State'],
            value_vars=date_cols,
            var_name='date',
            value_name=value_name
        )
        long_df['date'] = long_df['date'].map(header_dates)
        long_df = long_df.rename(columns={'Country/Region': 'country', 'Province/State': 'province'})
        return long_df[['country', 'province', 'date', value_name]]

    @staticmethod
    def aggregate_by_country(long_df: pd.DataFrame, value_name: str) -> pd.DataFrame:
        """Sum a long table over provinces: one row per (country, date)."""
        aggregated = (
            long_df.groupby(JOIN_KEYS, as_index=False)[value_name]
            .sum()
            .sort_values(JOIN_KEYS)
            .reset_index(drop=True)
        )
        return aggregated

    def process_time_series(self, df: pd.DataFrame, value_name: str) -> pd.DataFrame:
        """Normalize and aggregate one JHU table."""
        self._log(f"Processing {value_name} time series ({len(df)} rows)...")
        aggregated = self.aggregate_by_country(self.normalize_time_series(df, value_name), value_name)
        self._log(f"Processed {value_name}: {aggregated['country'].nunique()} countries, "
                  f"{aggregated['date'].nunique()} dates")
        return aggregated

    # ------------------------------------------------------------------
    # Demographics
    # ------------------------------------------------------------------

    @staticmethod
    def extract_demographics(df: pd.DataFrame, reference_year: int) -> pd.DataFrame:
        """
        Select the demographic indicators for one year.

        Args:
            df: UN WPP demographic indicators table
            reference_year: Year to keep

        Returns:
            Table with columns: country, year, population_thousands, density,
            median_age, life_expectancy (at most one row per country)
        """
        missing = [col for col in DEMOGRAPHIC_COLUMNS if col not in df.columns]
        if missing:
            raise ParseError('demographics', f"missing columns {missing}")

        demo = df[list(DEMOGRAPHIC_COLUMNS)].rename(columns=DEMOGRAPHIC_COLUMNS)
        for col in ['year'] + DEMOGRAPHIC_FIELDS:
            converted = pd.to_numeric(demo[col], errors='coerce')
            bad = converted.isna() & demo[col].notna()
            if bad.any():
                raise ParseError('demographics', f"non-numeric {col} values {demo.loc[bad, col].unique()[:5].tolist()}")
            demo[col] = converted

        demo = demo[demo['year'] == reference_year].copy()
        demo['year'] = demo['year'].astype(int)

        duplicated = demo['country'][demo['country'].duplicated()].unique().tolist()
        if duplicated:
            raise ParseError('demographics', f"several {reference_year} rows for {duplicated[:5]}")
        return demo.reset_index(drop=True)

    @staticmethod
    def reconcile_country_names(demographics: pd.DataFrame, name_map: CountryNameMap) -> pd.DataFrame:
        """
        Return a copy of the demographic table with country names corrected.

        A corrected location replaces an uncorrected one that already carries
        the target name. WPP lists regional aggregates in the same column, e.g.
        the "Micronesia" subregion next to "Micronesia (Fed. States of)".
        """
        reconciled = demographics.copy()
        renamed = reconciled['country'].isin(name_map.corrections.keys())
        reconciled['country'] = reconciled['country'].map(name_map.apply)

        shadowed = ~renamed & reconciled['country'].isin(reconciled.loc[renamed, 'country'])
        reconciled = reconciled[~shadowed].reset_index(drop=True)

        duplicated = reconciled['country'][reconciled['country'].duplicated()].unique().tolist()
        if duplicated:
            raise ParseError('demographics', f"name corrections map several locations onto {duplicated}")
        return reconciled

    def process_demographics(self, df: pd.DataFrame) -> pd.DataFrame:
        """Extract the reference-year snapshot and correct country names."""
        self._log(f"Processing demographic indicators ({len(df)} rows)...")
        demo = self.extract_demographics(df, self.reference_year)
        renamed = int(demo['country'].isin(self.name_map.corrections.keys()).sum())
        demo = self.reconcile_country_names(demo, self.name_map)
        self._log(f"Processed demographics: {len(demo)} locations in {self.reference_year}, "
                  f"{renamed} names corrected")
        return demo

    # ------------------------------------------------------------------
    # Joins, snapshot and per-capita rate
    # ------------------------------------------------------------------

    @staticmethod
    def join_cases_deaths(cases: pd.DataFrame, deaths: pd.DataFrame) -> Tuple[pd.DataFrame, bool]:
        """
        Inner-join aggregated cases and deaths on (country, date).

        Returns:
            Joined table and whether its length equals both input lengths
        """
        combined = pd.merge(cases, deaths, on=JOIN_KEYS, how='inner', validate='one_to_one')
        assert len(combined) <= min(len(cases), len(deaths))
        row_counts_match = len(combined) == len(cases) == len(deaths)
        return combined, row_counts_match

    @staticmethod
    def attach_demographics(combined: pd.DataFrame, demographics: pd.DataFrame) -> pd.DataFrame:
        """Left-join the demographic snapshot on country; unmatched rows keep nulls."""
        joined = pd.merge(
            combined,
            demographics.drop(columns=['year'], errors='ignore'),
            on='country',
            how='left',
            validate='many_to_one'
        )
        assert len(joined) == len(combined)
        return joined

    @staticmethod
    def select_reference_date(joined: pd.DataFrame,
                              reference_date: Optional[date] = None) -> Tuple[pd.DataFrame, pd.Timestamp]:
        """
        Keep the rows of one date.

        Args:
            joined: Table with a datetime 'date' column
            reference_date: Date to keep; None keeps the latest date present

        Returns:
            Snapshot rows and the date used
        """
        if joined.empty:
            raise ValueError("No joined case/death rows to take a snapshot from")
        if reference_date is None:
            snapshot_date = joined['date'].max()
        else:
            snapshot_date = pd.Timestamp(reference_date)
        snapshot = joined[joined['date'] == snapshot_date]
        if snapshot.empty:
            raise ValueError(
                f"Reference date {snapshot_date.date()} not in data "
                f"({joined['date'].min().date()} to {joined['date'].max().date()})"
            )
        return snapshot.reset_index(drop=True), snapshot_date

    @staticmethod
    def compute_deaths_per_100k(df: pd.DataFrame) -> pd.DataFrame:
        """
        Add deaths per 100,000 people (population is given in thousands).

        Rows with missing or non-positive population get NaN, never zero.
        """
        out = df.copy()
        population = out['population_thousands']
        computable = population.notna() & (population > 0)
        out['deaths_per_100k'] = out['deaths'].div(population.where(computable)) * 100
        return out

    def run_all_processing(self, cases_raw: pd.DataFrame, deaths_raw: pd.DataFrame,
                           demographics_raw: pd.DataFrame) -> Tuple[pd.DataFrame, pd.DataFrame]:
        """
        Run every processing step on the raw tables.

        Findings that do not stop the run are appended to self.diagnostics.

        Returns:
            (snapshot, timeseries): the reference-date table with
            deaths_per_100k, and the full joined table over all dates
        """
        self.diagnostics = []
        cases = self.process_time_series(cases_raw, 'cases')
        deaths = self.process_time_series(deaths_raw, 'deaths')
        demographics = self.process_demographics(demographics_raw)

        combined, row_counts_match = self.join_cases_deaths(cases, deaths)
        if not row_counts_match:
            case_keys = set(map(tuple, cases[JOIN_KEYS].to_numpy()))
            death_keys = set(map(tuple, deaths[JOIN_KEYS].to_numpy()))
            unmatched = sorted({country for country, _ in case_keys ^ death_keys})
            self._report(
                JoinIntegrityWarning,
                f"Case/death join kept {len(combined)} rows of {len(cases)} case and "
                f"{len(deaths)} death rows",
                unmatched
            )

        timeseries = self.attach_demographics(combined, demographics)
        absent = sorted(set(combined['country']) - set(demographics['country']))
        if absent:
            self._report(
                MissingDemographicsWarning,
                f"{len(absent)} countries have no {self.reference_year} demographics",
                absent
            )

        snapshot, snapshot_date = self.select_reference_date(timeseries, self.reference_date)
        snapshot = self.compute_deaths_per_100k(snapshot)
        not_computable = snapshot.loc[snapshot['deaths_per_100k'].isna(), 'country'].tolist()
        if not_computable:
            self._report(
                ComputationWarning,
                f"deaths_per_100k not computable for {len(not_computable)} countries "
                "(missing or non-positive population)",
                not_computable
            )

        self._log(f"Created snapshot for {snapshot_date.date()}: {len(snapshot)} countries, "
                  f"{snapshot['deaths_per_100k'].notna().sum()} with deaths per 100k")
        return snapshot, timeseries
