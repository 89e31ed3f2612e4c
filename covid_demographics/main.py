#!/usr/bin/env python3
"""
Main Execution Script for the COVID-19 Demographics Analysis

Downloads the JHU CSSE case/death time series and the UN WPP demographic
indicators, joins them by country on one reference date, and reports how
COVID-19 deaths relate to population density, median age and life expectancy.
"""

import argparse
import sys
from datetime import date
from pathlib import Path
from typing import List, Optional

import pandas as pd
import yaml

from covid_demographics.analysis import print_summary, reports_to_frame
from covid_demographics.config import PipelineConfig
from covid_demographics.errors import PipelineError
from covid_demographics.paths import ensure_directories_exist
from covid_demographics.pipeline import PipelineResult, run_pipeline


class CovidDemographicsAnalysis:
    """Runs the pipeline and reports its results."""

    def __init__(self, config: PipelineConfig = None, verbose: bool = True):
        """
        Initialize the analysis

        Args:
            config: Pipeline configuration
            verbose: Whether to print progress
        """
        self.config = config or PipelineConfig()
        self.verbose = verbose
        self.output_dir = Path(self.config.output_dir)
        self.figures_dir = Path(self.config.figures_dir)

    def _export_results(self, results: pd.DataFrame, filename: str):
        """Export results to CSV file"""
        results.to_csv(self.output_dir / filename, index=False)
        print(f"Results exported to {self.output_dir / filename}")

    @staticmethod
    def print_diagnostics(result: PipelineResult) -> None:
        if not result.diagnostics:
            print("No data-quality issues found")
            return
        print("Data-quality diagnostics:")
        for diagnostic in result.diagnostics:
            print(f"  [{diagnostic.category.__name__}] {diagnostic.message}")
            if diagnostic.countries:
                shown = ', '.join(diagnostic.countries[:10])
                more = f" (+{len(diagnostic.countries) - 10} more)" if len(diagnostic.countries) > 10 else ""
                print(f"      {shown}{more}")

    def run(self, plot: bool = True, export: bool = False) -> PipelineResult:
        """
        Run the full analysis.

        Args:
            plot: Whether to save the scatter plots
            export: Whether to write the snapshot, regressions and diagnostics as CSV

        Returns:
            PipelineResult
        """
        dirs = [self.figures_dir] if plot else []
        if export:
            dirs.append(self.output_dir)
        if dirs:
            ensure_directories_exist(*dirs)

        result = run_pipeline(self.config, plot=plot, verbose=self.verbose)

        print(f"\nSnapshot date: {result.reference_date.date()} ({len(result.joined)} countries)")
        self.print_diagnostics(result)
        print()
        print_summary(result.reports)

        if export:
            self._export_results(result.joined, "joined_snapshot.csv")
            self._export_results(reports_to_frame(result.reports), "regressions.csv")
            self._export_results(result.diagnostics_frame(), "diagnostics.csv")
        return result


def build_config(args: argparse.Namespace) -> PipelineConfig:
    """Start from the YAML file (or defaults) and apply command-line overrides."""
    config = PipelineConfig.from_yaml(args.config) if args.config else PipelineConfig()
    return config.with_overrides(
        sources={
            'cases_url': args.cases_url,
            'deaths_url': args.deaths_url,
            'demographics_url': args.demographics_url,
            'demographics_member': args.demographics_member,
            'request_timeout': args.timeout,
        },
        analysis={
            'reference_year': args.reference_year,
            'reference_date': args.reference_date,
            'country_names_path': args.country_names,
        },
        output_dir=args.output_dir,
        figures_dir=args.figures_dir,
    )


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="COVID-19 deaths vs. demographics analysis")
    parser.add_argument("--config", type=Path, help="YAML configuration file")
    parser.add_argument("--cases-url", help="Cumulative cases CSV (URL or path)")
    parser.add_argument("--deaths-url", help="Cumulative deaths CSV (URL or path)")
    parser.add_argument("--demographics-url", help="Demographic indicators zip archive (URL or path)")
    parser.add_argument("--demographics-member", help="CSV file name inside the demographic archive")
    parser.add_argument("--reference-year", type=int, help="Year of the demographic snapshot")
    parser.add_argument("--reference-date", type=date.fromisoformat,
                        help="Snapshot date YYYY-MM-DD (default: latest date in the data)")
    parser.add_argument("--country-names", type=Path, help="YAML country-name correction table")
    parser.add_argument("--timeout", type=float, help="HTTP timeout per request in seconds")
    parser.add_argument("--output-dir", type=Path, help="Directory for exported CSV files")
    parser.add_argument("--figures-dir", type=Path, help="Directory for plots")
    parser.add_argument("--no-plots", action="store_true", help="Do not save plots")
    parser.add_argument("--export", action="store_true", help="Export snapshot, regressions and diagnostics as CSV")
    parser.add_argument("--describe", action="store_true", help="Print the configuration documentation and exit")
    parser.add_argument("--quiet", action="store_true", help="Only print the final report")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main function"""
    args = parse_args(argv)
    try:
        config = build_config(args)
        if args.describe:
            config.describe_all()
            return 0

        analysis = CovidDemographicsAnalysis(config, verbose=not args.quiet)
        analysis.run(plot=not args.no_plots, export=args.export)
    except (PipelineError, ValueError, FileNotFoundError, yaml.YAMLError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print("Analysis completed successfully!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
