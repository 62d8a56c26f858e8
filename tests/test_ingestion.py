"""Tests for statistics ingestion."""

import json
import math

import pandas as pd
import pytest

from fanstats.errors import ConfigurationError
from fanstats.processor.ingestion import (
    clean_columns,
    detect_encoding,
    load_statistics,
    normalize_record,
    parse_numeric,
    read_csv_auto,
    read_statistics_table,
    records_from_dataframe,
)
from fanstats.processor.registry import build_default_registry


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def registry():
    return build_default_registry()


@pytest.fixture
def stats_csv(tmp_path):
    path = tmp_path / "stats.csv"
    path.write_text(
        "projectId,remoteImages,female,male,reportText1,jerseyPrice\n"
        'p1,"1,200",180,220,Great game,70.5\n'
        "p2,,10,,,\n"
    )
    return path


# ---------------------------------------------------------------------------
# parse_numeric
# ---------------------------------------------------------------------------

class TestParseNumeric:
    def test_plain_integer(self):
        assert parse_numeric(42) == 42.0

    def test_comma_formatted(self):
        assert parse_numeric("63,571") == 63571.0

    def test_decimal(self):
        assert parse_numeric("23.53") == 23.53

    def test_negative(self):
        assert parse_numeric("-1,234") == -1234.0

    def test_empty_string(self):
        assert math.isnan(parse_numeric("  "))

    def test_none_value(self):
        assert math.isnan(parse_numeric(None))

    def test_non_numeric(self):
        assert math.isnan(parse_numeric("hello"))

    def test_bool_is_not_a_number(self):
        assert math.isnan(parse_numeric(True))


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

class TestNormalizeRecord:
    def test_numbers_typed(self, registry):
        record = normalize_record({"remoteImages": "1,200", "jerseyPrice": "70.5"}, registry)
        assert record == {"remoteImages": 1200, "jerseyPrice": 70.5}
        assert isinstance(record["remoteImages"], int)

    def test_empty_values_dropped(self, registry):
        assert normalize_record({"remoteImages": "", "female": None}, registry) == {}

    def test_zero_kept(self, registry):
        assert normalize_record({"remoteImages": "0"}, registry) == {"remoteImages": 0}

    def test_text_variable_kept_as_string(self, registry):
        assert normalize_record({"reportText1": "123"}, registry) == {"reportText1": "123"}

    def test_bad_numeric_dropped(self, registry):
        assert normalize_record({"remoteImages": "lots"}, registry) == {}

    def test_unregistered_fields(self, registry):
        record = normalize_record({"topCountry": "Hungary", "extra": "5"}, registry)
        assert record == {"topCountry": "Hungary", "extra": 5}

    def test_id_column_dropped(self):
        assert normalize_record({"projectId": "p1", "a": 1}) == {"a": 1}


class TestTables:
    def test_read_statistics_table(self, stats_csv, registry):
        records = read_statistics_table(stats_csv, registry)
        assert set(records) == {"p1", "p2"}
        assert records["p1"] == {"remoteImages": 1200, "female": 180, "male": 220,
                                 "reportText1": "Great game", "jerseyPrice": 70.5}
        assert records["p2"] == {"female": 10}

    def test_missing_id_column(self):
        with pytest.raises(ConfigurationError):
            records_from_dataframe(pd.DataFrame({"a": ["1"]}))

    def test_clean_columns(self):
        df = clean_columns(pd.DataFrame({" a ": [1]}))
        assert list(df.columns) == ["a"]

    def test_detect_utf8(self, stats_csv):
        assert detect_encoding(stats_csv) == ("utf-8", ",")

    def test_detect_utf16(self, tmp_path):
        path = tmp_path / "stats.csv"
        path.write_bytes(b"\xff\xfe" + "projectId\ta\np1\t1\n".encode("utf-16-le"))
        assert detect_encoding(path) == ("utf-16-le", "\t")
        df = read_csv_auto(path)
        assert list(df.columns) == ["projectId", "a"]

    def test_tsv(self, tmp_path):
        path = tmp_path / "stats.tsv"
        path.write_text("projectId\tfemale\np1\t5\n")
        assert read_statistics_table(path) == {"p1": {"female": 5}}

    def test_excel(self, tmp_path, registry):
        path = tmp_path / "stats.xlsx"
        pd.DataFrame({"projectId": ["p1"], "female": [180], "male": [220]}).to_excel(
            path, index=False, engine="openpyxl")
        assert read_statistics_table(path, registry) == {"p1": {"female": 180, "male": 220}}


# ---------------------------------------------------------------------------
# load_statistics
# ---------------------------------------------------------------------------

class TestLoadStatistics:
    def test_csv_by_project(self, stats_csv, registry):
        assert load_statistics(stats_csv, "p2", registry) == {"female": 10}

    def test_csv_unknown_project(self, stats_csv):
        with pytest.raises(ConfigurationError):
            load_statistics(stats_csv, "p9")

    def test_csv_needs_project_when_many_rows(self, stats_csv):
        with pytest.raises(ConfigurationError):
            load_statistics(stats_csv)

    def test_yaml_single_record(self, tmp_path, registry):
        path = tmp_path / "stats.yaml"
        path.write_text("remoteImages: 120\nreportText1: Hello\n")
        assert load_statistics(path, "p1", registry) == {"remoteImages": 120,
                                                          "reportText1": "Hello"}

    def test_yaml_keyed_by_project(self, tmp_path):
        path = tmp_path / "stats.yaml"
        path.write_text("p1: {female: 1}\np2: {female: 2}\n")
        assert load_statistics(path, "p2") == {"female": 2}

    def test_yaml_missing_project(self, tmp_path):
        path = tmp_path / "stats.yaml"
        path.write_text("p1: {female: 1}\np2: {female: 2}\n")
        with pytest.raises(ConfigurationError):
            load_statistics(path, "p3")

    def test_json(self, tmp_path):
        path = tmp_path / "stats.json"
        path.write_text(json.dumps({"female": 180, "male": 220}))
        assert load_statistics(path) == {"female": 180, "male": 220}

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "stats.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ConfigurationError):
            load_statistics(path)
