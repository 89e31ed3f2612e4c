#!/usr/bin/env python3
"""Pipeline Configuration and Parameter Documentation.

This module centralizes every externally settable parameter of the analysis,
using Pydantic for validation and documentation:

- Source locators (case, death and demographic files) and download settings
- Analysis parameters (reference year, reference date, country-name table)
- Output locations

The country-name correction table is not an inline literal: it lives in
``country_names.yaml`` next to this module and is loaded into a validated
:class:`CountryNameMap`.

Usage:
    >>> from covid_demographics.config import PipelineConfig
    >>> config = PipelineConfig()
    >>> config.analysis.reference_year  # 2019
    >>> config.sources.describe('demographics_url')
    >>> config = PipelineConfig.from_yaml("my_run.yaml")
"""

from datetime import date
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from covid_demographics.paths import COUNTRY_NAMES_FILE, FIGURES_DIR, OUTPUT_DIR

JHU_TIME_SERIES_URL = (
    "https://raw.githubusercontent.com/CSSEGISandData/COVID-19/master/"
    "csse_covid_19_data/csse_covid_19_time_series"
)
WPP_INDICATORS_URL = (
    "https://population.un.org/wpp/Download/Files/1_Indicators%20(Standard)/"
    "CSV_FILES/WPP2022_Demographic_Indicators_Medium.zip"
)


class _DescribedModel(BaseModel):
    """Base for parameter groups: frozen, strict, self-documenting."""

    model_config = {'frozen': True, 'extra': 'forbid'}

    def describe(self, param_name: str) -> None:
        """Print documentation for a parameter.

        Args:
            param_name: Name of the parameter to describe
        """
        if param_name not in type(self).model_fields:
            raise ValueError(f"Unknown parameter: {param_name}")

        field_info = type(self).model_fields[param_name]
        value = getattr(self, param_name)
        extra = field_info.json_schema_extra or {}

        print(f"\n{'=' * 70}")
        print(f"Parameter: {param_name}")
        print(f"{'=' * 70}")
        print(f"Value: {value}")
        if 'units' in extra:
            print(f"Units: {extra['units']}")
        print(f"\nDescription:")
        print(f"  {field_info.description}")
        if 'source' in extra:
            print(f"\nSource:")
            print(f"  {extra['source']}")
        if 'interpretation' in extra:
            print(f"\nInterpretation:")
            print(f"  {extra['interpretation']}")
        print(f"{'=' * 70}\n")


# ============================================================================
# Source Parameters (Where the Data Comes From)
# ============================================================================

class SourceParameters(_DescribedModel):
    """Locators of the three input datasets and download settings."""

    cases_url: str = Field(
        default=f"{JHU_TIME_SERIES_URL}/time_series_covid19_confirmed_global.csv",
        min_length=1,
        description="Cumulative confirmed cases, one row per province/country and one column per date (M/D/YY).",
        json_schema_extra={
            'source': 'JHU CSSE COVID-19 Data Repository',
            'interpretation': 'URL or local path of a wide CSV time series',
        }
    )

    deaths_url: str = Field(
        default=f"{JHU_TIME_SERIES_URL}/time_series_covid19_deaths_global.csv",
        min_length=1,
        description="Cumulative deaths, same shape as the case table.",
        json_schema_extra={
            'source': 'JHU CSSE COVID-19 Data Repository',
            'interpretation': 'URL or local path of a wide CSV time series',
        }
    )

    demographics_url: str = Field(
        default=WPP_INDICATORS_URL,
        min_length=1,
        description="Zip archive holding the demographic indicators CSV.",
        json_schema_extra={
            'source': 'UN World Population Prospects 2022, medium variant',
            'interpretation': 'URL or local path of a zip archive',
        }
    )

    demographics_member: str = Field(
        default="WPP2022_Demographic_Indicators_Medium.csv",
        min_length=1,
        description="Name of the CSV member to read from the demographic archive.",
    )

    request_timeout: float = Field(
        default=60.0,
        gt=0.0,
        le=3600.0,
        description="Timeout applied to each connect and each socket read of an HTTP request.",
        json_schema_extra={
            'units': 'seconds',
            'interpretation': 'Bounds a silent server, not a slow one; see download_timeout',
        }
    )

    download_timeout: float = Field(
        default=1800.0,
        gt=0.0,
        description="Wall-clock limit for streaming the demographic archive, checked between chunks.",
        json_schema_extra={
            'units': 'seconds',
            'interpretation': 'A server that keeps trickling bytes aborts the run with AcquisitionError',
        }
    )

    chunk_size: int = Field(
        default=1 << 20,
        gt=0,
        description="Chunk size used when streaming the demographic archive to disk.",
        json_schema_extra={'units': 'bytes'}
    )


# ============================================================================
# Analysis Parameters
# ============================================================================

class AnalysisParameters(_DescribedModel):
    """Parameters controlling the join, the snapshot and the regressions."""

    reference_year: int = Field(
        default=2019,
        ge=1950,
        le=2100,
        description="Year of the demographic snapshot attached to every country.",
        json_schema_extra={
            'units': 'calendar year',
            'interpretation': 'Last full pre-pandemic year of population statistics',
        }
    )

    reference_date: Optional[date] = Field(
        default=None,
        description="Date of the case/death snapshot. None uses the latest date present in the data.",
        json_schema_extra={
            'interpretation': 'Cumulative counts are compared across countries on this single date',
        }
    )

    country_names_path: Path = Field(
        default=COUNTRY_NAMES_FILE,
        description="YAML file with demographic-to-case/death country-name corrections.",
    )


# ============================================================================
# Country-Name Corrections
# ============================================================================

class CountryNameMap(BaseModel):
    """Exact-match corrections from demographic spellings to case/death spellings.

    No correction target may itself be a correction source. This makes the
    substitution order-independent and idempotent.
    """

    model_config = {'frozen': True, 'extra': 'forbid'}

    corrections: Dict[str, str] = Field(default_factory=dict)

    @field_validator('corrections')
    @classmethod
    def _no_blank_names(cls, v: Dict[str, str]) -> Dict[str, str]:
        for source, target in v.items():
            if not source.strip() or not target.strip():
                raise ValueError(f"Blank country name in correction {source!r} -> {target!r}")
        return v

    @model_validator(mode='after')
    def _targets_are_not_sources(self) -> 'CountryNameMap':
        chained = sorted(set(self.corrections.values()) & set(self.corrections))
        if chained:
            raise ValueError(f"Correction targets that are also sources: {chained}")
        return self

    @classmethod
    def from_yaml(cls, path: Union[str, Path] = COUNTRY_NAMES_FILE) -> 'CountryNameMap':
        """Load the correction table from a YAML file with a `corrections` mapping."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Country-name file {path} not found")
        cfg = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        return cls(corrections=cfg.get('corrections') or {})

    def apply(self, name: str) -> str:
        return self.corrections.get(name, name)

    def __len__(self) -> int:
        return len(self.corrections)


# ============================================================================
# Main Configuration Class
# ============================================================================

class PipelineConfig(BaseModel):
    """Complete pipeline configuration.

    Usage:
        >>> config = PipelineConfig()
        >>> config.sources.cases_url
        >>> config.with_overrides(analysis={'reference_year': 2020})
    """

    model_config = {'frozen': True, 'extra': 'forbid'}

    sources: SourceParameters = Field(
        default_factory=SourceParameters,
        description="Input locations and download settings"
    )

    analysis: AnalysisParameters = Field(
        default_factory=AnalysisParameters,
        description="Join, snapshot and regression parameters"
    )

    output_dir: Path = Field(default=OUTPUT_DIR, description="Where exported tables are written")

    figures_dir: Path = Field(default=FIGURES_DIR, description="Where plots are written")

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> 'PipelineConfig':
        """Load a configuration file; omitted keys keep their defaults."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file {path} not found")
        cfg = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        return cls.model_validate(cfg)

    def with_overrides(self, sources: Optional[Dict[str, Any]] = None,
                       analysis: Optional[Dict[str, Any]] = None,
                       **top_level: Any) -> 'PipelineConfig':
        """Return a validated copy with the given non-None values replaced."""
        data = self.model_dump()
        data['sources'].update({k: v for k, v in (sources or {}).items() if v is not None})
        data['analysis'].update({k: v for k, v in (analysis or {}).items() if v is not None})
        data.update({k: v for k, v in top_level.items() if v is not None})
        return type(self).model_validate(data)

    def load_country_names(self) -> CountryNameMap:
        return CountryNameMap.from_yaml(self.analysis.country_names_path)

    def describe_all(self) -> None:
        """Print documentation for all parameters in all categories."""
        for category_name in ['sources', 'analysis']:
            category = getattr(self, category_name)
            print(f"\n{'#' * 70}")
            print(f"# {category_name.upper()}")
            print(f"{'#' * 70}")
            for param_name in type(category).model_fields.keys():
                category.describe(param_name)


if __name__ == "__main__":
    """Print all parameters when run as script."""
    config = PipelineConfig()

    print("=" * 80)
    print("PIPELINE PARAMETERS")
    print("=" * 80)
    for category_name, category in [('SOURCES', config.sources), ('ANALYSIS', config.analysis)]:
        print(f"\n{category_name}")
        print("-" * 80)
        for param_name, value in category.model_dump().items():
            print(f"  {param_name:20s} = {value}")

    names = config.load_country_names()
    print(f"\nCountry-name corrections: {len(names)}")
    for source, target in names.corrections.items():
        print(f"  {source:45s} -> {target}")
    print("=" * 80)
