"""Unit tests for the fact source adapters.

Tests cover:
- In-memory source filtering
- CSV and TSV reading (column aliases, empty cells, missing columns)
- JSON arrays and result-collection objects
- DuckDB schema, inserts and filter push-down
- Source factory selection
"""

import asyncio
import json
import threading

import pytest

from clinic_pivot.adapters.sources import (
    SAMPLE_FACTS,
    CSVFactSource,
    DuckDBFactSource,
    InMemoryFactSource,
    JSONFactSource,
    get_fact_source,
)
from clinic_pivot.domain.facts import FactFilter
from clinic_pivot.domain.ports import (
    InvalidRecordError,
    SourceError,
    SourceNotFoundError,
    UnsupportedSourceError,
)


@pytest.fixture
def csv_file(tmp_path):
    """Long-format CSV export with two clinics."""
    path = tmp_path / "results.csv"
    path.write_text(
        "patient_id,field_nm,field_value,clinic_id\n"
        "1,a,1,1\n"
        "1,b,2,1\n"
        "3,a,3,1\n"
        "4,c,,2\n"
    )
    return path


@pytest.fixture
def json_file(tmp_path, sample_records):
    """JSON export in the results collection shape."""
    path = tmp_path / "results.json"
    path.write_text(json.dumps({"results": sample_records}))
    return path


class TestInMemoryFactSource:
    """Test the in-memory source."""

    def test_defaults_to_sample_facts(self):
        """Test that an empty constructor serves the sample facts."""
        source = InMemoryFactSource()
        assert source.read_records() == SAMPLE_FACTS

    @pytest.mark.asyncio
    async def test_fetch_filters(self, sample_records):
        """Test that the filter is applied to validated facts."""
        source = InMemoryFactSource(sample_records)
        facts = await source.fetch(FactFilter(patient_id=1))

        assert [fact.field_name for fact in facts] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_fetch_bad_record(self):
        """Test that a malformed record fails at fetch time."""
        source = InMemoryFactSource([{"patient_id": 1}])
        with pytest.raises(InvalidRecordError):
            await source.fetch()

    def test_can_read(self):
        """Test that only the memory location is accepted."""
        source = InMemoryFactSource()
        assert source.can_read(":memory:")
        assert not source.can_read("results.csv")


class TestCSVFactSource:
    """Test the CSV source."""

    def test_init_defaults(self, csv_file):
        """Test initialization with default parameters."""
        source = CSVFactSource(str(csv_file))
        assert source.delimiter == ','
        assert source.chunk_size == 10000
        assert source.adapter_name == "csv_source"

    def test_read_records(self, csv_file):
        """Test that every line becomes a text record with empty cells as None."""
        records = list(CSVFactSource(str(csv_file)).read_records())

        assert len(records) == 4
        assert records[0] == {"patient_id": "1", "field_nm": "a", "field_value": "1", "clinic_id": "1"}
        assert records[3]["field_value"] is None

    def test_small_chunks(self, csv_file):
        """Test that chunked reading returns the same records."""
        records = list(CSVFactSource(str(csv_file), chunk_size=1).read_records())
        assert [record["patient_id"] for record in records] == ["1", "1", "3", "4"]

    @pytest.mark.asyncio
    async def test_fetch_with_filter(self, csv_file):
        """Test that identifiers are normalized before filtering."""
        facts = await CSVFactSource(str(csv_file)).fetch(FactFilter(clinic_id=2))

        assert len(facts) == 1
        assert facts[0].patient_id == 4
        assert facts[0].field_value is None

    @pytest.mark.asyncio
    async def test_field_name_column(self, tmp_path):
        """Test that a field_name header is accepted instead of field_nm."""
        path = tmp_path / "named.csv"
        path.write_text("patient_id,field_name,field_value\n7,weight,70\n")

        facts = await CSVFactSource(str(path)).fetch()
        assert facts[0].field_name == "weight"
        assert facts[0].clinic_id is None

    def test_tsv(self, tmp_path):
        """Test tab delimited exports."""
        path = tmp_path / "results.tsv"
        path.write_text("patient_id\tfield_nm\tfield_value\n1\ta\tx\n")

        records = list(CSVFactSource(str(path), delimiter="\t").read_records())
        assert records == [{"patient_id": "1", "field_nm": "a", "field_value": "x"}]

    def test_missing_file(self, tmp_path):
        """Test that a missing file raises SourceNotFoundError."""
        with pytest.raises(SourceNotFoundError):
            list(CSVFactSource(str(tmp_path / "nope.csv")).read_records())

    def test_missing_columns(self, tmp_path):
        """Test that a CSV without a field name column is unsupported."""
        path = tmp_path / "bad.csv"
        path.write_text("patient_id,value\n1,x\n")

        with pytest.raises(UnsupportedSourceError):
            list(CSVFactSource(str(path)).read_records())

    def test_empty_file(self, tmp_path):
        """Test that an empty file yields no records."""
        path = tmp_path / "empty.csv"
        path.write_text("")

        assert list(CSVFactSource(str(path)).read_records()) == []

    @pytest.mark.asyncio
    async def test_blank_patient_id(self, tmp_path):
        """Test that a line without a patient id fails fast."""
        path = tmp_path / "blank.csv"
        path.write_text("patient_id,field_nm,field_value\n1,a,x\n,b,y\n")

        with pytest.raises(InvalidRecordError) as exc_info:
            await CSVFactSource(str(path)).fetch()
        assert exc_info.value.record_index == 1

    @pytest.mark.asyncio
    async def test_invalid_encoding(self, tmp_path):
        """Test that bytes that are not UTF-8 raise SourceError."""
        path = tmp_path / "latin.csv"
        path.write_bytes(b"patient_id,field_nm,field_value\n1,a,\xff\xfe\n")

        with pytest.raises(SourceError) as exc_info:
            await CSVFactSource(str(path)).fetch()
        assert exc_info.value.operation == "fetch"


class TestJSONFactSource:
    """Test the JSON source."""

    @pytest.mark.asyncio
    async def test_results_object(self, json_file):
        """Test reading facts under the results key."""
        facts = await JSONFactSource(str(json_file)).fetch()
        assert [(fact.patient_id, fact.field_name) for fact in facts] == [(1, "a"), (1, "b"), (3, "a")]

    @pytest.mark.asyncio
    async def test_plain_array(self, tmp_path, sample_records):
        """Test reading a top-level array with a filter."""
        path = tmp_path / "array.json"
        path.write_text(json.dumps(sample_records))

        facts = await JSONFactSource(str(path)).fetch(FactFilter(patient_id=3))
        assert len(facts) == 1
        assert facts[0].field_value == "3"

    def test_wrong_shape(self, tmp_path):
        """Test that an object without the records key is unsupported."""
        path = tmp_path / "object.json"
        path.write_text(json.dumps({"rows": []}))

        with pytest.raises(UnsupportedSourceError):
            JSONFactSource(str(path)).read_records()

    def test_invalid_json(self, tmp_path):
        """Test that unparseable JSON raises SourceError."""
        path = tmp_path / "broken.json"
        path.write_text("{not json")

        with pytest.raises(SourceError):
            JSONFactSource(str(path)).read_records()

    def test_missing_file(self, tmp_path):
        """Test that a missing file raises SourceNotFoundError."""
        with pytest.raises(SourceNotFoundError):
            JSONFactSource(str(tmp_path / "nope.json")).read_records()

    @pytest.mark.asyncio
    async def test_invalid_encoding(self, tmp_path):
        """Test that bytes that are not UTF-8 raise SourceError."""
        path = tmp_path / "latin.json"
        path.write_bytes(b'[{"patient_id": 1, "field_nm": "a", "field_value": "\xff\xfe"}]')

        with pytest.raises(SourceError) as exc_info:
            await JSONFactSource(str(path)).fetch()
        assert exc_info.value.operation == "fetch"


class TestDuckDBFactSource:
    """Test the DuckDB source."""

    @pytest.fixture
    def source(self, sample_records):
        source = DuckDBFactSource(":memory:")
        assert source.initialize_schema().is_success()
        assert source.insert_facts(sample_records + [
            {"patient_id": 2, "field_nm": "c", "field_value": "9", "clinic_id": 2},
        ]).value == 4
        yield source
        source.close()

    def test_invalid_table_name(self):
        """Test that table names are restricted to identifiers."""
        with pytest.raises(SourceError):
            DuckDBFactSource(":memory:", table="results; DROP TABLE x")

    def test_build_query(self):
        """Test that only active predicates become parameters."""
        source = DuckDBFactSource(":memory:")
        sql, params = source.build_query(FactFilter(clinic_id=1, patient_id=3))

        assert "WHERE clinic_id = ? AND patient_id = ?" in sql
        assert sql.endswith("ORDER BY patient_id, rowid")
        assert params == ["1", "3"]

    def test_build_query_without_filter(self):
        """Test that no filter means no WHERE clause."""
        sql, params = DuckDBFactSource(":memory:").build_query(None)
        assert "WHERE" not in sql
        assert params == []

    @pytest.mark.asyncio
    async def test_fetch_all(self, source):
        """Test that facts come back grouped by patient with ids normalized."""
        facts = await source.fetch()
        assert [(fact.patient_id, fact.field_name) for fact in facts] == [
            (1, "a"), (1, "b"), (2, "c"), (3, "a"),
        ]
        assert facts[0].clinic_id == 1

    @pytest.mark.asyncio
    async def test_fetch_filtered(self, source):
        """Test that filters are pushed down to the query."""
        facts = await source.fetch(FactFilter(clinic_id=2))
        assert len(facts) == 1
        assert facts[0].patient_id == 2

    @pytest.mark.asyncio
    async def test_fetch_runs_in_worker_thread(self, source):
        """Test that the query does not run on the event loop thread."""
        loop_thread = threading.get_ident()
        query_threads = []
        read_records = source.read_records

        def recording_read(filters=None):
            query_threads.append(threading.get_ident())
            return read_records(filters)

        source.read_records = recording_read
        facts, more_facts = await asyncio.gather(source.fetch(), source.fetch(FactFilter(patient_id=1)))

        assert len(facts) == 4
        assert len(more_facts) == 2
        assert loop_thread not in query_threads

    def test_insert_invalid_record(self, source):
        """Test that a malformed record is reported as a failure result."""
        result = source.insert_facts([{"patient_id": 1}])
        assert result.is_failure()
        assert result.error_type == "InvalidRecordError"

    def test_insert_nothing(self, source):
        """Test that inserting no records succeeds with zero rows."""
        assert source.insert_facts([]).value == 0

    def test_missing_table(self):
        """Test that querying a missing table raises SourceError."""
        source = DuckDBFactSource(":memory:", table="missing")
        with pytest.raises(SourceError):
            source.read_records()
        source.close()

    def test_file_database(self, tmp_path, sample_records):
        """Test that facts persist in a database file."""
        db_path = str(tmp_path / "results.duckdb")
        writer = DuckDBFactSource(db_path)
        writer.initialize_schema()
        writer.insert_facts(sample_records)
        writer.close()

        reader = DuckDBFactSource(db_path)
        assert len(reader.read_records()) == 3
        assert reader.get_source_info()["size"] > 0
        reader.close()

    def test_missing_file(self, tmp_path):
        """Test that a missing database file raises SourceNotFoundError."""
        with pytest.raises(SourceNotFoundError):
            DuckDBFactSource(str(tmp_path / "nope.duckdb")).read_records()


class TestGetFactSource:
    """Test the source factory."""

    def test_memory(self):
        """Test that :memory: selects the in-memory sample source."""
        assert isinstance(get_fact_source(":memory:"), InMemoryFactSource)

    def test_by_extension(self, tmp_path):
        """Test adapter selection by file extension."""
        assert isinstance(get_fact_source("results.csv"), CSVFactSource)
        assert isinstance(get_fact_source("results.json"), JSONFactSource)
        assert isinstance(get_fact_source(str(tmp_path / "results.duckdb")), DuckDBFactSource)

    def test_tsv_delimiter(self):
        """Test that .tsv files are read tab delimited."""
        source = get_fact_source("results.tsv")
        assert isinstance(source, CSVFactSource)
        assert source.delimiter == "\t"

    def test_kwargs_passed(self):
        """Test that adapter options reach the constructor."""
        source = get_fact_source("results.db", table="lab_results")
        assert source.table == "lab_results"

    def test_unsupported(self):
        """Test that unknown extensions raise UnsupportedSourceError."""
        with pytest.raises(UnsupportedSourceError):
            get_fact_source("results.xml")
