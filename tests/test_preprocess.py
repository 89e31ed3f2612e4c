import warnings
from datetime import date

import numpy as np
import pandas as pd
import pytest

from covid_demographics.config import CountryNameMap
from covid_demographics.errors import (
    ComputationWarning, JoinIntegrityWarning, MissingDemographicsWarning, ParseError
)
from covid_demographics.preprocess import DataProcessor


# ----------------------------------------------------------------------
# Shape normalization
# ----------------------------------------------------------------------

def test_normalize_produces_long_table_with_parsed_dates(make_series):
    wide = make_series([(None, 'US', [100, 150]), ('Ontario', 'Canada', [3, 4])], ['3/1/23', '3/2/23'])

    long_df = DataProcessor.normalize_time_series(wide, 'cases')

    assert list(long_df.columns) == ['country', 'province', 'date', 'cases']
    assert len(long_df) == 4
    assert set(long_df['date']) == {pd.Timestamp('2023-03-01'), pd.Timestamp('2023-03-02')}
    us = long_df[long_df['country'] == 'US'].set_index('date')['cases']
    assert us[pd.Timestamp('2023-03-02')] == 150
    assert 'Lat' not in long_df.columns and 'Long' not in long_df.columns


def test_normalize_parses_unpadded_and_padded_month_day(make_series):
    wide = make_series([(None, 'US', [1, 2])], ['1/22/20', '12/31/21'])
    long_df = DataProcessor.normalize_time_series(wide, 'deaths')
    assert sorted(long_df['date']) == [pd.Timestamp('2020-01-22'), pd.Timestamp('2021-12-31')]


def test_normalize_does_not_modify_input(make_series):
    wide = make_series([(None, 'US', [1, 2])], ['3/1/23', '3/2/23'])
    before = wide.copy()
    DataProcessor.normalize_time_series(wide, 'cases')
    pd.testing.assert_frame_equal(wide, before)


@pytest.mark.parametrize('header', ['2023-03-01', 'March 1', '13/1/23', 'Unnamed: 6'])
def test_malformed_date_header_is_a_parse_error(make_series, header):
    wide = make_series([(None, 'US', [1, 2])], ['3/1/23', header])
    with pytest.raises(ParseError, match='date headers'):
        DataProcessor.normalize_time_series(wide, 'cases')


def test_non_numeric_cell_is_a_parse_error(make_series):
    wide = make_series([(None, 'US', [1, 'n/a'])], ['3/1/23', '3/2/23'])
    with pytest.raises(ParseError, match="non-numeric value 'n/a' for US on 3/2/23"):
        DataProcessor.normalize_time_series(wide, 'cases')


def test_missing_cell_is_not_coerced(make_series):
    wide = make_series([(None, 'US', [1, None])], ['3/1/23', '3/2/23'])
    with pytest.raises(ParseError):
        DataProcessor.normalize_time_series(wide, 'deaths')


def test_missing_identifier_column_is_a_parse_error(make_series):
    wide = make_series([(None, 'US', [1])], ['3/1/23']).drop(columns=['Lat'])
    with pytest.raises(ParseError, match='identifier columns'):
        DataProcessor.normalize_time_series(wide, 'cases')


# ----------------------------------------------------------------------
# Aggregation
# ----------------------------------------------------------------------

def test_aggregate_sums_provinces(make_series):
    dates = ['3/1/23', '3/2/23']
    wide = make_series([
        ('Ontario', 'Canada', [10, 20]),
        ('Quebec', 'Canada', [5, 7]),
        ('Yukon', 'Canada', [0, 1]),
        (None, 'Italy', [40, 45]),
    ], dates)
    long_df = DataProcessor.normalize_time_series(wide, 'cases')

    aggregated = DataProcessor.aggregate_by_country(long_df, 'cases')

    assert len(aggregated) == 4
    assert not aggregated.duplicated(['country', 'date']).any()
    expected = long_df.groupby(['country', 'date'])['cases'].apply(lambda s: int(s.to_numpy().sum()))
    for _, row in aggregated.iterrows():
        assert row['cases'] == expected[(row['country'], row['date'])]
    canada = aggregated[aggregated['country'] == 'Canada']['cases'].tolist()
    assert canada == [15, 28]
    italy = aggregated[aggregated['country'] == 'Italy']['cases'].tolist()
    assert italy == [40, 45]


# ----------------------------------------------------------------------
# Demographics and name reconciliation
# ----------------------------------------------------------------------

def test_extract_demographics_projects_and_filters_year(make_indicators):
    raw = make_indicators([
        ('Italy', 2018, 60000.0, 204.0, 45.5, 83.2),
        ('Italy', 2019, 59700.0, 203.0, 46.0, 83.0),
        ('Canada', 2020, 38000.0, 4.2, 41.1, 82.0),
    ])

    demo = DataProcessor.extract_demographics(raw, 2019)

    assert list(demo.columns) == ['country', 'year', 'population_thousands', 'density',
                                  'median_age', 'life_expectancy']
    assert demo['country'].tolist() == ['Italy']
    assert demo.loc[0, 'population_thousands'] == 59700.0
    # Canada has no 2019 row: absent, not an error


def test_extract_demographics_requires_columns(make_indicators):
    raw = make_indicators([('Italy', 2019, 1.0, 1.0, 1.0, 1.0)]).drop(columns=['LEx'])
    with pytest.raises(ParseError, match='LEx'):
        DataProcessor.extract_demographics(raw, 2019)


def test_extract_demographics_rejects_duplicate_country(make_indicators):
    raw = make_indicators([
        ('Italy', 2019, 1.0, 1.0, 1.0, 1.0),
        ('Italy', 2019, 2.0, 1.0, 1.0, 1.0),
    ])
    with pytest.raises(ParseError, match='several 2019 rows'):
        DataProcessor.extract_demographics(raw, 2019)


def test_extract_demographics_rejects_non_numeric_indicator(make_indicators):
    raw = make_indicators([('Italy', 2019, 'lots', 1.0, 1.0, 1.0)])
    with pytest.raises(ParseError, match='population_thousands'):
        DataProcessor.extract_demographics(raw, 2019)


def test_reconcile_renames_and_returns_new_table(make_indicators, name_map):
    demo = DataProcessor.extract_demographics(make_indicators([
        ('Russian Federation', 2019, 145700.0, 8.9, 39.0, 73.0),
        ('Italy', 2019, 59700.0, 203.0, 46.0, 83.0),
    ]), 2019)

    reconciled = DataProcessor.reconcile_country_names(demo, name_map)

    assert reconciled['country'].tolist() == ['Russia', 'Italy']
    assert demo['country'].tolist() == ['Russian Federation', 'Italy']


def test_reconcile_is_idempotent(make_indicators, name_map):
    demo = DataProcessor.extract_demographics(make_indicators([
        ('Russian Federation', 2019, 1.0, 1.0, 1.0, 1.0),
        ('United States of America', 2019, 1.0, 1.0, 1.0, 1.0),
        ('Türkiye', 2019, 1.0, 1.0, 1.0, 1.0),
        ('Italy', 2019, 1.0, 1.0, 1.0, 1.0),
    ]), 2019)

    once = DataProcessor.reconcile_country_names(demo, name_map)
    twice = DataProcessor.reconcile_country_names(once, name_map)

    pd.testing.assert_frame_equal(once, twice)
    assert once['country'].tolist() == ['Russia', 'US', 'Turkey', 'Italy']


def test_reconcile_is_case_sensitive(make_indicators, name_map):
    demo = DataProcessor.extract_demographics(make_indicators([
        ('russian federation', 2019, 1.0, 1.0, 1.0, 1.0),
    ]), 2019)
    assert DataProcessor.reconcile_country_names(demo, name_map)['country'].tolist() == ['russian federation']


def test_reconcile_corrected_name_replaces_same_named_region(make_indicators):
    demo = DataProcessor.extract_demographics(make_indicators([
        ('Micronesia', 2019, 540.0, 30.0, 24.0, 73.0),
        ('Micronesia (Fed. States of)', 2019, 113.0, 161.0, 23.0, 70.0),
        ('Italy', 2019, 59700.0, 203.0, 46.0, 83.0),
    ]), 2019)

    reconciled = DataProcessor.reconcile_country_names(demo, CountryNameMap.from_yaml())

    assert reconciled['country'].tolist() == ['Micronesia', 'Italy']
    assert reconciled['population_thousands'].tolist() == [113.0, 59700.0]
    assert len(demo) == 3


def test_reconcile_rejects_two_corrections_onto_one_country(make_indicators):
    name_map = CountryNameMap(corrections={'Türkiye': 'Turkey', 'Republic of Türkiye': 'Turkey'})
    demo = DataProcessor.extract_demographics(make_indicators([
        ('Türkiye', 2019, 1.0, 1.0, 1.0, 1.0),
        ('Republic of Türkiye', 2019, 1.0, 1.0, 1.0, 1.0),
    ]), 2019)
    with pytest.raises(ParseError, match='Turkey'):
        DataProcessor.reconcile_country_names(demo, name_map)


# ----------------------------------------------------------------------
# Joins, snapshot and per-capita rate
# ----------------------------------------------------------------------

def _aggregated(rows, value_name):
    return pd.DataFrame(
        [(country, pd.Timestamp(day), value) for country, day, value in rows],
        columns=['country', 'date', value_name]
    )


def test_join_counts_match_when_keys_agree():
    cases = _aggregated([('US', '2023-03-01', 100), ('US', '2023-03-02', 150)], 'cases')
    deaths = _aggregated([('US', '2023-03-01', 2), ('US', '2023-03-02', 3)], 'deaths')

    combined, match = DataProcessor.join_cases_deaths(cases, deaths)

    assert match
    assert len(combined) == 2
    assert combined.set_index('date').loc[pd.Timestamp('2023-03-02'), 'deaths'] == 3


def test_join_drops_unmatched_keys_and_reports_mismatch():
    cases = _aggregated([('US', '2023-03-01', 100), ('US', '2023-03-02', 150),
                         ('Italy', '2023-03-01', 7)], 'cases')
    deaths = _aggregated([('US', '2023-03-01', 2), ('US', '2023-03-02', 3)], 'deaths')

    combined, match = DataProcessor.join_cases_deaths(cases, deaths)

    assert not match
    assert len(combined) <= min(len(cases), len(deaths))
    assert set(combined['country']) == {'US'}


def test_attach_demographics_keeps_countries_without_demographics():
    combined = _aggregated([('US', '2023-03-01', 100), ('Atlantis', '2023-03-01', 1)], 'cases')
    combined['deaths'] = [2, 0]
    demographics = pd.DataFrame({
        'country': ['US'], 'year': [2019], 'population_thousands': [331000.0],
        'density': [36.0], 'median_age': [38.0], 'life_expectancy': [79.0],
    })

    joined = DataProcessor.attach_demographics(combined, demographics)

    assert len(joined) == 2
    assert 'year' not in joined.columns
    atlantis = joined[joined['country'] == 'Atlantis'].iloc[0]
    assert pd.isna(atlantis['population_thousands']) and pd.isna(atlantis['median_age'])


def test_attach_demographics_repeats_snapshot_for_every_date():
    combined = _aggregated([('US', '2023-03-01', 100), ('US', '2023-03-02', 150)], 'cases')
    combined['deaths'] = [2, 3]
    demographics = pd.DataFrame({
        'country': ['US'], 'population_thousands': [331000.0],
        'density': [36.0], 'median_age': [38.0], 'life_expectancy': [79.0],
    })
    joined = DataProcessor.attach_demographics(combined, demographics)
    assert joined['median_age'].tolist() == [38.0, 38.0]


def test_select_reference_date_defaults_to_latest():
    joined = _aggregated([('US', '2023-03-01', 1), ('US', '2023-03-02', 2)], 'cases')
    snapshot, used = DataProcessor.select_reference_date(joined)
    assert used == pd.Timestamp('2023-03-02')
    assert snapshot['cases'].tolist() == [2]


def test_select_reference_date_uses_configured_date():
    joined = _aggregated([('US', '2023-03-01', 1), ('US', '2023-03-02', 2)], 'cases')
    snapshot, used = DataProcessor.select_reference_date(joined, date(2023, 3, 1))
    assert used == pd.Timestamp('2023-03-01')
    assert snapshot['cases'].tolist() == [1]


def test_select_reference_date_absent_from_data():
    joined = _aggregated([('US', '2023-03-01', 1)], 'cases')
    with pytest.raises(ValueError, match='2020-01-01 not in data'):
        DataProcessor.select_reference_date(joined, date(2020, 1, 1))


def test_deaths_per_100k_definition():
    df = pd.DataFrame({'country': ['A'], 'deaths': [500], 'population_thousands': [1000.0]})
    assert DataProcessor.compute_deaths_per_100k(df)['deaths_per_100k'].iloc[0] == pytest.approx(50.0)


def test_deaths_per_100k_not_computable_for_missing_or_non_positive_population():
    df = pd.DataFrame({
        'country': ['Zero', 'Negative', 'Missing', 'Fine'],
        'deaths': [10, 10, 10, 10],
        'population_thousands': [0.0, -5.0, np.nan, 10.0],
        'median_age': [30.0, 31.0, 32.0, 33.0],
    })

    with warnings.catch_warnings():
        warnings.simplefilter('error')
        out = DataProcessor.compute_deaths_per_100k(df)

    assert out['deaths_per_100k'].isna().tolist() == [True, True, True, False]
    assert out['deaths_per_100k'].iloc[3] == pytest.approx(100.0)
    # rows kept with other fields intact
    assert out['country'].tolist() == df['country'].tolist()
    assert out['median_age'].tolist() == df['median_age'].tolist()
    assert 'deaths_per_100k' not in df.columns


# ----------------------------------------------------------------------
# Full processing and diagnostics
# ----------------------------------------------------------------------

def test_run_all_processing_reports_missing_demographics(sample_tables, name_map):
    processor = DataProcessor(name_map=name_map, verbose=False)

    with pytest.warns(MissingDemographicsWarning, match='no 2019 demographics'):
        snapshot, timeseries = processor.run_all_processing(
            sample_tables['cases'], sample_tables['deaths'], sample_tables['demographics'])

    assert snapshot['date'].unique().tolist() == [pd.Timestamp('2023-03-09')]
    assert len(snapshot) == 5
    assert len(timeseries) == 15
    categories = [d.category for d in processor.diagnostics]
    assert MissingDemographicsWarning in categories
    assert ComputationWarning in categories
    assert JoinIntegrityWarning not in categories
    missing = next(d for d in processor.diagnostics if d.category is MissingDemographicsWarning)
    assert missing.countries == ['Atlantis']
    assert missing.count == 1

    canada = snapshot[snapshot['country'] == 'Canada'].iloc[0]
    assert canada['cases'] == 40 and canada['deaths'] == 3
    russia = snapshot[snapshot['country'] == 'Russia'].iloc[0]
    assert russia['median_age'] == 39.0


def test_run_all_processing_reports_join_mismatch(make_series, make_indicators, name_map):
    cases = make_series([(None, 'US', [1, 2]), (None, 'Italy', [3, 4])], ['3/1/23', '3/2/23'])
    deaths = make_series([(None, 'US', [0, 1])], ['3/1/23', '3/2/23'])
    demographics = make_indicators([('United States of America', 2019, 331000.0, 36.0, 38.0, 79.0)])
    processor = DataProcessor(name_map=name_map, verbose=False)

    with pytest.warns(JoinIntegrityWarning):
        snapshot, _ = processor.run_all_processing(cases, deaths, demographics)

    assert snapshot['country'].tolist() == ['US']
    join = next(d for d in processor.diagnostics if d.category is JoinIntegrityWarning)
    assert join.countries == ['Italy']


def test_run_all_processing_resets_diagnostics(sample_tables, name_map):
    processor = DataProcessor(name_map=name_map, verbose=False)
    with warnings.catch_warnings():
        warnings.simplefilter('ignore')
        processor.run_all_processing(sample_tables['cases'], sample_tables['deaths'], sample_tables['demographics'])
        first = len(processor.diagnostics)
        processor.run_all_processing(sample_tables['cases'], sample_tables['deaths'], sample_tables['demographics'])
    assert len(processor.diagnostics) == first


def test_run_all_processing_with_empty_name_map_loses_renamed_countries(sample_tables):
    processor = DataProcessor(name_map=CountryNameMap(), verbose=False)
    with pytest.warns(MissingDemographicsWarning):
        snapshot, _ = processor.run_all_processing(
            sample_tables['cases'], sample_tables['deaths'], sample_tables['demographics'])
    missing = next(d for d in processor.diagnostics if d.category is MissingDemographicsWarning)
    assert missing.countries == ['Atlantis', 'Russia', 'US']
