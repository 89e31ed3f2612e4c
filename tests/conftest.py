import io
import zipfile
from pathlib import Path

import matplotlib
matplotlib.use("Agg")

import pandas as pd
import pytest

from covid_demographics.config import CountryNameMap


def wide_series(rows, dates):
    """Build a JHU-style wide table.

    rows: iterable of (province, country, [values per date])
    dates: M/D/YY column headers
    """
    records = []
    for province, country, values in rows:
        record = {'Province/State': province, 'Country/Region': country, 'Lat': 1.0, 'Long': 2.0}
        record.update(dict(zip(dates, values)))
        records.append(record)
    return pd.DataFrame(records, columns=['Province/State', 'Country/Region', 'Lat', 'Long'] + list(dates))


def wpp_indicators(rows):
    """Build a UN WPP-style table from (location, year, pop_thousands, density, median_age, lex)."""
    df = pd.DataFrame(rows, columns=['Location', 'Time', 'TPopulation1July', 'PopDensity', 'MedianAgePop', 'LEx'])
    df['Variant'] = 'Medium'
    df['Births'] = 1.0
    return df


def zip_bytes(member, df):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w') as archive:
        archive.writestr(member, df.to_csv(index=False))
    return buffer.getvalue()


@pytest.fixture
def make_series():
    return wide_series


@pytest.fixture
def make_indicators():
    return wpp_indicators


@pytest.fixture
def make_zip():
    return zip_bytes


@pytest.fixture
def name_map():
    return CountryNameMap(corrections={
        'Russian Federation': 'Russia',
        'United States of America': 'US',
        'Türkiye': 'Turkey',
    })


@pytest.fixture
def sample_tables():
    """Four countries on three dates; Canada has two provinces, Atlantis no demographics."""
    dates = ['3/7/23', '3/8/23', '3/9/23']
    cases = wide_series([
        (None, 'US', [100, 150, 200]),
        ('Ontario', 'Canada', [10, 20, 30]),
        ('Quebec', 'Canada', [5, 5, 10]),
        (None, 'Russia', [50, 60, 80]),
        (None, 'Italy', [40, 45, 90]),
        (None, 'Atlantis', [1, 1, 1]),
    ], dates)
    deaths = wide_series([
        (None, 'US', [2, 3, 5]),
        ('Ontario', 'Canada', [1, 1, 2]),
        ('Quebec', 'Canada', [0, 1, 1]),
        (None, 'Russia', [4, 5, 7]),
        (None, 'Italy', [3, 4, 9]),
        (None, 'Atlantis', [0, 0, 0]),
    ], dates)
    demographics = wpp_indicators([
        ('United States of America', 2019, 331000.0, 36.0, 38.0, 79.0),
        ('United States of America', 2020, 332000.0, 36.2, 38.2, 77.0),
        ('Canada', 2019, 37600.0, 4.2, 41.0, 82.0),
        ('Russian Federation', 2019, 145700.0, 8.9, 39.0, 73.0),
        ('Italy', 2019, 59700.0, 203.0, 46.0, 83.0),
        ('World', 2019, 7700000.0, 59.0, 30.0, 72.0),
    ])
    return {'cases': cases, 'deaths': deaths, 'demographics': demographics}


@pytest.fixture
def local_sources(tmp_path, sample_tables):
    """Write the sample tables to disk the way they are published."""
    cases_path = tmp_path / "cases.csv"
    deaths_path = tmp_path / "deaths.csv"
    archive_path = tmp_path / "indicators.zip"
    sample_tables['cases'].to_csv(cases_path, index=False)
    sample_tables['deaths'].to_csv(deaths_path, index=False)
    archive_path.write_bytes(zip_bytes("indicators.csv", sample_tables['demographics']))
    return {
        'cases_url': str(cases_path),
        'deaths_url': str(deaths_path),
        'demographics_url': str(archive_path),
        'demographics_member': "indicators.csv",
    }
