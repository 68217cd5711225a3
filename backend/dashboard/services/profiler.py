import logging
import math
from datetime import date, datetime
import numpy as np
import pandas as pd
from typing import Any, Dict, List, Optional
from pandas.api.types import (
    is_bool_dtype,
    is_datetime64_any_dtype,
    is_integer_dtype,
    is_numeric_dtype,
)
from dashboard.core.schemas import (
    ColumnMetadata,
    ColumnSummary,
    DatasetMetadata,
    DatasetSchema,
)
from dashboard.core.performance import track_performance

logger = logging.getLogger(__name__)


def _is_declared_non_numeric(series: pd.Series) -> bool:
    return (
        is_bool_dtype(series)
        or isinstance(series.dtype, pd.CategoricalDtype)
        or is_datetime64_any_dtype(series)
    )


def is_numeric_column(series: pd.Series) -> bool:
    """
    A column is numeric iff every non-missing value parses as a float.

    Boolean, categorical and datetime columns carry a declared type and are
    never numeric.
    """
    if _is_declared_non_numeric(series):
        return False
    if is_numeric_dtype(series):
        return True

    non_missing = series.dropna()
    if any(isinstance(v, bool) for v in non_missing):
        return False
    return bool(pd.to_numeric(non_missing, errors='coerce').notna().all())


def as_numeric(series: pd.Series) -> pd.Series:
    """Float view of a numeric column; unparsable values become NaN."""
    if is_numeric_dtype(series) and not is_bool_dtype(series):
        return series.astype(float)
    return pd.to_numeric(series, errors='coerce').astype(float)


def _num(value) -> Optional[float]:
    if value is None:
        return None
    value = float(value)
    return None if math.isnan(value) or math.isinf(value) else value


def _json_value(value):
    if value is None or value is pd.NaT or value is pd.NA:
        return None
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def to_records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """Rows as JSON-safe dicts; missing values become None."""
    return [
        {str(key): _json_value(value) for key, value in row.items()}
        for row in df.to_dict(orient='records')
    ]


def infer_dtype(series: pd.Series) -> str:
    """Type label reported in the metadata view."""
    if is_bool_dtype(series):
        return 'boolean'
    if isinstance(series.dtype, pd.CategoricalDtype):
        return 'categorical'
    if is_datetime64_any_dtype(series):
        return 'datetime'
    if is_integer_dtype(series):
        return 'integer'
    if is_numeric_column(series):
        return 'numeric'
    return 'text'


@track_performance("inspect_schema")
def inspect_schema(df: pd.DataFrame) -> DatasetSchema:
    """Column names, numeric subset and missing-value counts of a dataset."""
    all_columns = [str(col) for col in df.columns]
    numeric = [str(col) for col in df.columns if is_numeric_column(df[col])]

    fallback = not numeric
    if fallback:
        logger.info("No numeric columns detected, offering all columns for numeric selectors")

    row_count = len(df)
    missing = df.isna().sum()
    missing_counts = {str(col): int(missing[col]) for col in df.columns}
    missing_pct = {
        col: (100.0 * count / row_count if row_count else 0.0)
        for col, count in missing_counts.items()
    }

    return DatasetSchema(
        all_columns=all_columns,
        numeric_columns=all_columns if fallback else numeric,
        numeric_fallback=fallback,
        missing_counts=missing_counts,
        missing_pct=missing_pct,
        row_count=row_count,
    )


def build_metadata(df: pd.DataFrame) -> DatasetMetadata:
    """
    Dimensions, types, missing values and numeric summaries.

    Numeric statistics ignore missing values; an all-missing numeric column
    reports them as None.
    """
    row_count = len(df)
    columns = []

    for col in df.columns:
        series = df[col]
        missing_count = int(series.isna().sum())
        meta = ColumnMetadata(
            name=str(col),
            dtype=infer_dtype(series),
            missing_count=missing_count,
            missing_pct=100.0 * missing_count / row_count if row_count else 0.0,
        )

        if is_numeric_column(series):
            values = as_numeric(series).dropna()
            if not values.empty:
                meta.min = _num(values.min())
                meta.max = _num(values.max())
                meta.mean = _num(values.mean())
                meta.median = _num(values.median())
                meta.std = _num(values.std(ddof=1)) if len(values) > 1 else None

        columns.append(meta)

    return DatasetMetadata(row_count=row_count, col_count=len(df.columns), columns=columns)


def summarize_dataset(df: pd.DataFrame) -> List[ColumnSummary]:
    """Per-column summary statistics (quartiles for numbers, frequencies otherwise)."""
    summaries = []
    for col in df.columns:
        series = df[col]
        missing_count = int(series.isna().sum())

        if is_numeric_column(series):
            values = as_numeric(series).dropna()
            summary = ColumnSummary(name=str(col), kind='numeric', missing_count=missing_count)
            if not values.empty:
                q1, median, q3 = values.quantile([0.25, 0.5, 0.75])
                summary.min = _num(values.min())
                summary.q1 = _num(q1)
                summary.median = _num(median)
                summary.mean = _num(values.mean())
                summary.q3 = _num(q3)
                summary.max = _num(values.max())
        else:
            non_missing = series.dropna()
            counts = non_missing.astype(str).value_counts()
            summary = ColumnSummary(
                name=str(col),
                kind='categorical',
                missing_count=missing_count,
                count=int(len(non_missing)),
                unique_count=int(counts.size),
                top=str(counts.index[0]) if counts.size else None,
                top_freq=int(counts.iloc[0]) if counts.size else None,
            )

        summaries.append(summary)
    return summaries


def _fmt(value: Optional[float]) -> str:
    return "NA" if value is None else f"{value:.2f}"


def format_metadata_report(metadata: DatasetMetadata) -> str:
    """Plain-text metadata report."""
    lines = [
        "=== DATASET METADATA ===",
        "",
        "Dimensions:",
        f"  Rows: {metadata.row_count}",
        f"  Columns: {metadata.col_count}",
        "",
        "Column Names:",
    ]
    lines += [f"  - {col.name}" for col in metadata.columns]
    lines += ["", "Data Types:"]
    lines += [f"  {col.name}: {col.dtype}" for col in metadata.columns]
    lines += ["", "Missing Values:"]
    lines += [f"  {col.name}: {col.missing_count} ({col.missing_pct:.2f}%)" for col in metadata.columns]
    lines += ["", "Numeric Summary:"]

    for col in metadata.columns:
        if col.dtype not in ('numeric', 'integer'):
            continue
        lines += [
            f"  {col.name}:",
            f"    Min    = {_fmt(col.min)}",
            f"    Max    = {_fmt(col.max)}",
            f"    Mean   = {_fmt(col.mean)}",
            f"    Median = {_fmt(col.median)}",
            f"    SD     = {_fmt(col.std)}",
        ]

    return "\n".join(lines) + "\n"
