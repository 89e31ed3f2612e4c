#!/usr/bin/env python3
"""Centralized Path Management for the COVID-19 Demographics Analysis.

This module is the single place where file locations are defined, so the
analysis behaves the same regardless of the working directory it is run from.

Directory Structure:
    project_root/
    ├── covid_demographics/       # Python source code
    │   └── country_names.yaml    # Country-name corrections (reviewable)
    ├── output/                   # Exported tables (joined snapshot, regressions)
    └── figures/                  # Scatter plots with fitted regression lines

Usage:
    >>> from covid_demographics.paths import FIGURES_DIR, OUTPUT_DIR
    >>> fig.savefig(FIGURES_DIR / "median_age_vs_deaths_per_100k.pdf")
"""

from pathlib import Path

# ============================================================================
# Root Directories
# ============================================================================

PACKAGE_DIR = Path(__file__).parent
"""Directory holding the Python sources and bundled configuration files."""

PROJECT_ROOT = PACKAGE_DIR.parent
"""Project root (parent of the package directory)."""

# ============================================================================
# Configuration Files
# ============================================================================

COUNTRY_NAMES_FILE = PACKAGE_DIR / "country_names.yaml"
"""Default demographic-to-JHU country-name correction table."""

# ============================================================================
# Output Directories
# ============================================================================

OUTPUT_DIR = PROJECT_ROOT / "output"
"""Exported analysis tables (only written with --export)."""

FIGURES_DIR = PROJECT_ROOT / "figures"
"""Generated scatter plots."""


def ensure_directories_exist(*dirs: Path) -> None:
    """Create output directories if they don't exist.

    Safe to call multiple times. With no arguments, creates the default
    output and figures directories.
    """
    for dir_path in dirs or (OUTPUT_DIR, FIGURES_DIR):
        Path(dir_path).mkdir(parents=True, exist_ok=True)


if __name__ == "__main__":
    """Print all configured paths for debugging if run as script."""
    print("=" * 80)
    print("Configured Paths for COVID-19 Demographics Analysis")
    print("=" * 80)
    print(f"\nProject Root:  {PROJECT_ROOT}")
    print(f"Package:       {PACKAGE_DIR}")
    print(f"Country names: {COUNTRY_NAMES_FILE}")
    print(f"\n  Output Directories:")
    print(f"    Results: {OUTPUT_DIR}")
    print(f"    Figures: {FIGURES_DIR}")
    found = "found" if COUNTRY_NAMES_FILE.exists() else "MISSING"
    print(f"\nCountry-name table {found}")
