import logging
from io import BytesIO
from pathlib import Path
from typing import Optional, Union

import numpy as np
import pandas as pd
import requests

from dashboard.core.config import Settings, get_settings
from dashboard.core.errors import ErrorCodes, LoadError, SelectionError
from dashboard.core.performance import track_performance
from dashboard.core.sanitization import is_http_url, normalize_column_name, sanitize_for_logging
from dashboard.core.schemas import DataSource

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {'.csv'}
DOWNLOAD_CHUNK_SIZE = 1024 * 1024  # 1MB

SAMPLE_SEED = 123
SAMPLE_PRODUCTS = ["Product A", "Product B", "Product C", "Product D"]
SAMPLE_REGIONS = ["North", "South", "East", "West"]
SAMPLE_REPEATS = 50


def validate_file_extension(filename: Optional[str]) -> None:
    """Reject uploads whose name does not end in .csv. Nameless uploads are allowed."""
    if not filename:
        return

    file_ext = Path(filename).suffix.lower()
    if file_ext not in ALLOWED_EXTENSIONS:
        raise LoadError(
            LoadError.PARSE,
            f"Unsupported file format: '{file_ext or filename}'.",
            ErrorCodes.INVALID_FILE_TYPE
        )


def _dedupe_columns(columns) -> list:
    seen = {}
    result = []
    for col in columns:
        name = col
        while name in seen:
            seen[col] += 1
            name = f"{col}.{seen[col]}"
        seen[name] = 0
        result.append(name)
    return result


def _read_csv(contents: bytes) -> pd.DataFrame:
    try:
        return pd.read_csv(BytesIO(contents))
    except UnicodeDecodeError:
        logger.info("CSV is not valid UTF-8, retrying as latin-1")
        return pd.read_csv(BytesIO(contents), encoding='latin1')


def parse_csv(contents: bytes, max_bytes: Optional[int] = None) -> pd.DataFrame:
    """
    Parse CSV bytes into a DataFrame.

    Empty fields become NaN (missing), kept distinct from non-empty text.
    Header names are whitespace-normalised and made unique.

    Raises:
        LoadError: parse kind, for empty, oversized or malformed content
    """
    if max_bytes is not None and len(contents) > max_bytes:
        raise LoadError(
            LoadError.PARSE,
            f"Maximum size is {max_bytes / 1024 / 1024:.0f}MB, got {len(contents) / 1024 / 1024:.2f}MB.",
            ErrorCodes.FILE_TOO_LARGE
        )
    if not contents or not contents.strip():
        raise LoadError(LoadError.PARSE, "The content is empty.", ErrorCodes.FILE_EMPTY)

    try:
        df = _read_csv(contents)
    except pd.errors.EmptyDataError as e:
        raise LoadError(LoadError.PARSE, "No columns to parse.", ErrorCodes.FILE_EMPTY) from e
    except (pd.errors.ParserError, UnicodeDecodeError, ValueError) as e:
        logger.warning(f"CSV parsing failed: {sanitize_for_logging(str(e))}")
        raise LoadError(LoadError.PARSE, str(e).strip()) from e

    if df.empty:
        raise LoadError(LoadError.PARSE, "The file has a header but no rows.", ErrorCodes.FILE_EMPTY)

    df.columns = _dedupe_columns([normalize_column_name(str(col)) for col in df.columns])
    return df


def _read_body(response, max_bytes: Optional[int]) -> bytes:
    """Collect a streamed body, stopping as soon as it exceeds ``max_bytes``."""
    chunks = []
    size = 0
    for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
        size += len(chunk)
        if max_bytes is not None and size > max_bytes:
            raise LoadError(
                LoadError.PARSE,
                f"The download exceeds {max_bytes / 1024 / 1024:.0f}MB.",
                ErrorCodes.FILE_TOO_LARGE
            )
        chunks.append(chunk)
    return b"".join(chunks)


def fetch_url(url: Optional[str], timeout: float, max_bytes: Optional[int] = None) -> bytes:
    """
    Download raw CSV bytes.

    Raises:
        SelectionError: no URL given
        LoadError: network kind, for bad URLs, error statuses, connection failures and timeouts
    """
    if not url or not url.strip():
        raise SelectionError(SelectionError.MISSING_REQUIRED_FIELD, "Enter a CSV URL to load.")
    url = url.strip()
    if not is_http_url(url):
        raise LoadError(LoadError.NETWORK, "Only http and https URLs can be loaded.")

    response = None
    try:
        response = requests.get(url, timeout=timeout, stream=True)
        response.raise_for_status()
        return _read_body(response, max_bytes)
    except requests.Timeout as e:
        raise LoadError(LoadError.NETWORK, f"No response within {timeout:g} seconds.") from e
    except requests.HTTPError as e:
        raise LoadError(LoadError.NETWORK, f"Server answered with status {e.response.status_code}.") from e
    except requests.RequestException as e:
        raise LoadError(LoadError.NETWORK, f"Could not reach the server: {e.__class__.__name__}.") from e
    finally:
        if response is not None:
            response.close()


def generate_sample_data(seed: int = SAMPLE_SEED) -> pd.DataFrame:
    """
    Synthetic sales dataset, identical on every call for the same seed.

    200 rows: each product on 50 consecutive rows, regions cycling
    North/South/East/West. Month and Year are ordered calendar categories.
    """
    rng = np.random.default_rng(seed)
    n = len(SAMPLE_PRODUCTS) * SAMPLE_REPEATS

    return pd.DataFrame({
        "Product": np.repeat(SAMPLE_PRODUCTS, SAMPLE_REPEATS),
        "Region": np.tile(SAMPLE_REGIONS, n // len(SAMPLE_REGIONS)),
        "Sales": np.round(rng.normal(5000, 1500, n), 2),
        "Quantity": rng.integers(10, 101, n),
        "Revenue": np.round(rng.normal(15000, 5000, n), 2),
        "Profit": np.round(rng.normal(3000, 1000, n), 2),
        "Month": pd.Categorical(rng.integers(1, 13, n), categories=list(range(1, 13)), ordered=True),
        "Year": pd.Categorical(rng.integers(2022, 2025, n), categories=[2022, 2023, 2024], ordered=True),
    })


@track_performance("load_dataset")
def load_dataset(
    source: DataSource,
    param: Union[str, bytes, None] = None,
    filename: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> pd.DataFrame:
    """
    Obtain a dataset from one of the three sources.

    Args:
        source: url, upload or sample
        param: the URL for ``url``, the raw bytes for ``upload``; ignored for ``sample``
        filename: original upload name, used for extension checks
        settings: overrides the global settings

    Raises:
        LoadError, SelectionError
    """
    settings = settings or get_settings()
    source = DataSource(source)

    if source == DataSource.URL:
        contents = fetch_url(param, settings.url_fetch_timeout_seconds, settings.max_file_size_bytes)
        df = parse_csv(contents)
        logger.info(f"Loaded dataset from URL {sanitize_for_logging(str(param))}, shape: {df.shape}")
    elif source == DataSource.UPLOAD:
        if param is None:
            raise SelectionError(SelectionError.MISSING_REQUIRED_FIELD, "Choose a CSV file to upload.")
        validate_file_extension(filename)
        df = parse_csv(param, settings.max_file_size_bytes)
        logger.info(f"Loaded uploaded dataset {sanitize_for_logging(filename or 'unknown')}, shape: {df.shape}")
    else:
        df = generate_sample_data()
        logger.info(f"Generated sample sales dataset, shape: {df.shape}")

    return df
