"""
Tests for the dataset loader (URL fetch, CSV parsing, sample generator).
"""
import pytest
import pandas as pd
import requests
from dashboard.core.config import Settings
from dashboard.core.errors import ErrorCodes, LoadError, SelectionError
from dashboard.core.schemas import DataSource
from dashboard.services.loader import (
    SAMPLE_REGIONS,
    fetch_url,
    generate_sample_data,
    load_dataset,
    parse_csv,
    validate_file_extension,
)


class FakeResponse:
    def __init__(self, content=b"", status_code=200, chunks=None):
        self.chunks = chunks if chunks is not None else [content]
        self.status_code = status_code
        self.chunks_read = 0
        self.closed = False

    def iter_content(self, chunk_size=1):
        for chunk in self.chunks:
            self.chunks_read += 1
            yield chunk

    def close(self):
        self.closed = True

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)


def _fake_get(response=None, error=None, calls=None):
    def fake_get(url, timeout=None, stream=False):
        if calls is not None:
            calls.append((url, timeout, stream))
        if error is not None:
            raise error
        return response
    return fake_get


@pytest.mark.unit
def test_sample_data_is_deterministic():
    """Two calls produce byte-identical CSV."""
    first = generate_sample_data().to_csv(index=False)
    second = generate_sample_data().to_csv(index=False)
    assert first == second


@pytest.mark.unit
def test_sample_data_shape(sample_df):
    """Test sample columns and the product/region layout."""
    assert sample_df.shape == (200, 8)
    assert list(sample_df.columns) == [
        "Product", "Region", "Sales", "Quantity", "Revenue", "Profit", "Month", "Year"
    ]
    assert list(sample_df["Product"].iloc[:50].unique()) == ["Product A"]
    assert list(sample_df["Product"].iloc[150:].unique()) == ["Product D"]
    assert list(sample_df["Region"].iloc[:4]) == SAMPLE_REGIONS
    assert sample_df["Region"].value_counts().to_dict() == {r: 50 for r in SAMPLE_REGIONS}
    assert sample_df["Quantity"].between(10, 100).all()
    assert set(sample_df["Year"].unique()) <= {2022, 2023, 2024}


@pytest.mark.unit
def test_different_seed_changes_sample():
    assert not generate_sample_data(seed=1).equals(generate_sample_data(seed=2))


@pytest.mark.unit
def test_parse_csv_basic():
    """Test parsing a simple CSV, empty fields become missing."""
    df = parse_csv(b"name,age,note\nAlice,25,\nBob,30,hi\n")

    assert list(df.columns) == ["name", "age", "note"]
    assert len(df) == 2
    assert pd.isna(df.loc[0, "note"])
    assert df.loc[1, "note"] == "hi"


@pytest.mark.unit
def test_parse_csv_empty():
    with pytest.raises(LoadError) as exc:
        parse_csv(b"")
    assert exc.value.kind == LoadError.PARSE
    assert exc.value.code == ErrorCodes.FILE_EMPTY


@pytest.mark.unit
def test_parse_csv_header_only():
    with pytest.raises(LoadError) as exc:
        parse_csv(b"a,b\n")
    assert exc.value.code == ErrorCodes.FILE_EMPTY


@pytest.mark.unit
def test_parse_csv_malformed():
    """Rows with more fields than the header are a parse error."""
    with pytest.raises(LoadError) as exc:
        parse_csv(b"a,b\n1,2\n3,4,5,6\n")
    assert exc.value.kind == LoadError.PARSE
    assert exc.value.code == ErrorCodes.PARSE_ERROR
    assert exc.value.status_code == 400


@pytest.mark.unit
def test_parse_csv_too_large():
    with pytest.raises(LoadError) as exc:
        parse_csv(b"a\n1\n2\n", max_bytes=3)
    assert exc.value.code == ErrorCodes.FILE_TOO_LARGE


@pytest.mark.unit
def test_parse_csv_latin1():
    df = parse_csv(b"name\ncaf\xe9\n")
    assert df.loc[0, "name"] == "café"


@pytest.mark.unit
def test_parse_csv_normalizes_headers():
    """Whitespace in headers is collapsed and collisions made unique."""
    df = parse_csv(b'"a  b","a b"," c\nd "\n1,2,3\n')
    assert list(df.columns) == ["a b", "a b.1", "c d"]


@pytest.mark.unit
def test_validate_file_extension():
    validate_file_extension("data.csv")
    validate_file_extension("DATA.CSV")
    validate_file_extension(None)

    with pytest.raises(LoadError) as exc:
        validate_file_extension("data.xlsx")
    assert exc.value.code == ErrorCodes.INVALID_FILE_TYPE


@pytest.mark.unit
def test_fetch_url_success(monkeypatch):
    calls = []
    monkeypatch.setattr(
        "dashboard.services.loader.requests.get",
        _fake_get(FakeResponse(b"x,y\n1,2\n"), calls=calls)
    )

    assert fetch_url("  https://example.org/data.csv ", timeout=3) == b"x,y\n1,2\n"
    assert calls == [("https://example.org/data.csv", 3, True)]


@pytest.mark.unit
def test_fetch_url_empty():
    """An empty URL is a missing selection, not a network failure."""
    with pytest.raises(SelectionError) as exc:
        fetch_url("   ", timeout=1)
    assert exc.value.kind == SelectionError.MISSING_REQUIRED_FIELD


@pytest.mark.unit
def test_fetch_url_rejects_other_schemes():
    with pytest.raises(LoadError) as exc:
        fetch_url("ftp://example.org/data.csv", timeout=1)
    assert exc.value.kind == LoadError.NETWORK


@pytest.mark.unit
@pytest.mark.parametrize("error", [
    requests.Timeout("slow"),
    requests.ConnectionError("refused"),
])
def test_fetch_url_network_failures(monkeypatch, error):
    monkeypatch.setattr("dashboard.services.loader.requests.get", _fake_get(error=error))

    with pytest.raises(LoadError) as exc:
        fetch_url("https://example.org/data.csv", timeout=1)
    assert exc.value.kind == LoadError.NETWORK
    assert exc.value.code == ErrorCodes.NETWORK_ERROR
    assert exc.value.status_code == 502


@pytest.mark.unit
def test_fetch_url_error_status(monkeypatch):
    monkeypatch.setattr(
        "dashboard.services.loader.requests.get",
        _fake_get(FakeResponse(b"not found", status_code=404))
    )

    with pytest.raises(LoadError) as exc:
        fetch_url("https://example.org/missing.csv", timeout=1)
    assert exc.value.kind == LoadError.NETWORK
    assert "404" in exc.value.message


@pytest.mark.unit
def test_load_dataset_url(monkeypatch):
    monkeypatch.setattr(
        "dashboard.services.loader.requests.get",
        _fake_get(FakeResponse(b"x,y\n1,a\n2,b\n"))
    )

    df = load_dataset(DataSource.URL, "https://example.org/data.csv", settings=Settings())
    assert df.shape == (2, 2)


@pytest.mark.unit
def test_load_dataset_url_parse_failure(monkeypatch):
    """Fetched content that is not CSV is a parse error."""
    monkeypatch.setattr(
        "dashboard.services.loader.requests.get",
        _fake_get(FakeResponse(b""))
    )

    with pytest.raises(LoadError) as exc:
        load_dataset(DataSource.URL, "https://example.org/data.csv", settings=Settings())
    assert exc.value.kind == LoadError.PARSE


@pytest.mark.unit
def test_load_dataset_upload():
    df = load_dataset(DataSource.UPLOAD, b"a,b\n1,2\n", filename="x.csv", settings=Settings())
    assert list(df.columns) == ["a", "b"]

    with pytest.raises(SelectionError):
        load_dataset(DataSource.UPLOAD, None, settings=Settings())

    with pytest.raises(LoadError):
        load_dataset(DataSource.UPLOAD, b"a,b\n1,2\n", filename="x.json", settings=Settings())


@pytest.mark.unit
def test_load_dataset_sample_ignores_param():
    df = load_dataset("sample", "ignored", settings=Settings())
    assert df.equals(generate_sample_data())


@pytest.mark.unit
def test_fetch_url_stops_reading_past_limit(monkeypatch):
    """An oversized download is abandoned without reading the rest of the body."""
    response = FakeResponse(chunks=[b"abcd", b"efgh", b"ijkl"])
    monkeypatch.setattr("dashboard.services.loader.requests.get", _fake_get(response))

    with pytest.raises(LoadError) as exc:
        fetch_url("https://example.org/big.csv", timeout=1, max_bytes=6)

    assert exc.value.code == ErrorCodes.FILE_TOO_LARGE
    assert response.chunks_read == 2
    assert response.closed is True


@pytest.mark.unit
def test_fetch_url_joins_chunks(monkeypatch):
    response = FakeResponse(chunks=[b"x,y\n", b"1,2\n"])
    monkeypatch.setattr("dashboard.services.loader.requests.get", _fake_get(response))

    assert fetch_url("https://example.org/data.csv", timeout=1, max_bytes=8) == b"x,y\n1,2\n"
    assert response.closed is True
