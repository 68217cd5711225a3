"""
Chart dispatch: resolve a selection against a dataset into a renderable chart.

Every chart type has exactly one builder in ``CHART_BUILDERS``. Builders raise
``DashboardError`` subclasses for invalid selections; ``render_chart`` turns
those, and any unexpected failure, into an ``ErrorChart`` so a bad chart never
takes the session down.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import numpy as np
import pandas as pd

from dashboard.core.errors import (
    DashboardError,
    ErrorCodes,
    RenderError,
    SelectionError,
    get_error_response,
)
from dashboard.core.performance import track_performance
from dashboard.core.schemas import (
    NO_GROUP,
    ChartResult,
    ChartSpec,
    ChartType,
    DatasetSchema,
    ErrorChart,
    Selection,
)
from dashboard.services import generator
from dashboard.services.forest import MISSING_GROUPS_EXCLUDE, aggregate_forest
from dashboard.services.profiler import as_numeric, inspect_schema, is_numeric_column, to_records

logger = logging.getLogger(__name__)

DEFAULT_HISTOGRAM_BINS = 30


@dataclass(frozen=True)
class ChartRequest:
    df: pd.DataFrame
    schema: DatasetSchema
    selection: Selection
    forest_available: bool = True
    histogram_bins: int = DEFAULT_HISTOGRAM_BINS
    missing_groups: str = MISSING_GROUPS_EXCLUDE


def _require_column(request: ChartRequest, column: Optional[str], field_name: str) -> str:
    if not column:
        raise SelectionError(
            SelectionError.MISSING_REQUIRED_FIELD,
            f"Select a value for '{field_name}'."
        )
    if column not in request.df.columns:
        raise SelectionError(
            SelectionError.UNKNOWN_COLUMN,
            f"Column '{column}' selected for '{field_name}' is not in the current dataset."
        )
    return column


def _require_numeric(request: ChartRequest, column: Optional[str], field_name: str) -> str:
    column = _require_column(request, column, field_name)
    if not is_numeric_column(request.df[column]):
        raise RenderError(
            RenderError.UNSUPPORTED_TYPE,
            f"Column '{column}' selected for '{field_name}' is not numeric."
        )
    return column


def _group_column(request: ChartRequest) -> Optional[str]:
    if request.selection.group_var == NO_GROUP:
        return None
    return _require_column(request, request.selection.group_var, "group_var")


def _plot_frame(request: ChartRequest, columns: List[Optional[str]]) -> pd.DataFrame:
    """Selected columns, numeric ones coerced to floats."""
    columns = list(dict.fromkeys(col for col in columns if col))
    frame = request.df[columns].copy()
    for col in columns:
        if is_numeric_column(frame[col]):
            frame[col] = as_numeric(frame[col])
    return frame


def _axis_type(request: ChartRequest, column: str) -> str:
    return "quantitative" if is_numeric_column(request.df[column]) else "nominal"


def _free_field(columns, base: str) -> str:
    """``base``, prefixed with underscores until it names no dataset column."""
    taken = {str(col) for col in columns}
    name = base
    while name in taken:
        name = "_" + name
    return name


def _counts(request: ChartRequest, keys: List[str], count_field: str) -> pd.DataFrame:
    keys = list(dict.fromkeys(keys))
    return (
        request.df.groupby(keys, sort=False, dropna=False, observed=True)
        .size()
        .reset_index(name=count_field)
    )


def build_bar(request: ChartRequest) -> ChartSpec:
    x = _require_column(request, request.selection.x_var, "x_var")
    color = _group_column(request)
    count_field = _free_field(request.df.columns, generator.COUNT_FIELD)
    counts = _counts(request, [x] + ([color] if color else []), count_field)
    title = f"Bar Chart of {x}"
    return ChartSpec(
        chart_type=ChartType.BAR,
        title=title,
        x_column=x,
        color_column=color,
        data=to_records(counts),
        spec=generator.bar_spec(x, title, color=color, count_field=count_field),
    )


def build_scatter(request: ChartRequest) -> ChartSpec:
    x = _require_column(request, request.selection.x_var, "x_var")
    y = _require_numeric(request, request.selection.y_var, "y_var")
    color = _group_column(request)
    title = f"Scatter: {y} vs {x}"
    return ChartSpec(
        chart_type=ChartType.SCATTER,
        title=title,
        x_column=x,
        y_column=y,
        color_column=color,
        data=to_records(_plot_frame(request, [x, y, color])),
        spec=generator.scatter_spec(x, y, title, x_type=_axis_type(request, x), color=color),
    )


def build_line(request: ChartRequest) -> ChartSpec:
    """
    Ungrouped lines connect points in ascending x order (stable, missing x
    last). Grouped lines keep the original row order within each group.
    """
    x = _require_column(request, request.selection.x_var, "x_var")
    y = _require_numeric(request, request.selection.y_var, "y_var")
    color = _group_column(request)

    frame = _plot_frame(request, [x, y, color])
    if color is None:
        frame = frame.sort_values(x, kind="mergesort", na_position="last")
    order_field = _free_field(frame.columns, generator.ORDER_FIELD)
    frame[order_field] = np.arange(len(frame))

    title = f"Line: {y} vs {x}"
    return ChartSpec(
        chart_type=ChartType.LINE,
        title=title,
        x_column=x,
        y_column=y,
        color_column=color,
        data=to_records(frame),
        spec=generator.line_spec(
            x, y, title, x_type=_axis_type(request, x), color=color, order_field=order_field
        ),
    )


def build_box(request: ChartRequest) -> ChartSpec:
    x = _require_column(request, request.selection.x_var, "x_var")
    y = _require_numeric(request, request.selection.y_var, "y_var")
    color = _group_column(request)
    title = f"Box Plot: {y} by {x}"
    return ChartSpec(
        chart_type=ChartType.BOX,
        title=title,
        x_column=x,
        y_column=y,
        color_column=color,
        data=to_records(_plot_frame(request, [x, y, color])),
        spec=generator.box_spec(x, y, title, color=color),
    )


def build_histogram(request: ChartRequest) -> ChartSpec:
    """Equal-width bins over the observed range; non-numeric x falls back to counts."""
    x = _require_column(request, request.selection.x_var, "x_var")

    if not is_numeric_column(request.df[x]):
        title = f"Count of {x}"
        count_field = _free_field(request.df.columns, generator.COUNT_FIELD)
        return ChartSpec(
            chart_type=ChartType.HISTOGRAM,
            title=title,
            x_column=x,
            data=to_records(_counts(request, [x], count_field)),
            spec=generator.bar_spec(x, title, count_field=count_field),
        )

    values = as_numeric(request.df[x]).dropna()
    values = values[np.isfinite(values)]
    if values.empty:
        raise RenderError(RenderError.INSUFFICIENT_DATA, f"Column '{x}' has no values to bin.")

    counts, edges = np.histogram(values.to_numpy(), bins=request.histogram_bins)
    data = [
        {"bin_start": float(edges[i]), "bin_end": float(edges[i + 1]), generator.COUNT_FIELD: int(counts[i])}
        for i in range(len(counts))
    ]
    title = f"Histogram of {x}"
    return ChartSpec(
        chart_type=ChartType.HISTOGRAM,
        title=title,
        x_column=x,
        data=data,
        spec=generator.histogram_spec(x, title),
    )


def build_heatmap(request: ChartRequest) -> ChartSpec:
    """Pearson correlations between numeric columns over pairwise-complete rows."""
    numeric = [col for col in request.schema.detected_numeric if col in request.df.columns]
    if len(numeric) < 2:
        raise RenderError(
            RenderError.INSUFFICIENT_DATA,
            f"Need 2+ numeric variables, found {len(numeric)}."
        )

    frame = pd.DataFrame({col: as_numeric(request.df[col]) for col in numeric})
    corr = frame.corr(method="pearson")
    data = [
        {"var1": str(a), "var2": str(b), "correlation": corr.loc[a, b]}
        for a in numeric
        for b in numeric
    ]
    return ChartSpec(
        chart_type=ChartType.HEATMAP,
        title="Correlation Heatmap",
        data=to_records(pd.DataFrame(data)),
        spec=generator.correlation_heatmap_spec(),
    )


def build_forest(request: ChartRequest) -> ChartSpec:
    if not request.forest_available:
        info = RenderError(
            RenderError.CAPABILITY_UNAVAILABLE,
            "FOREST_PLOT_ENABLED is off for this deployment."
        ).to_response()
        return ChartSpec(
            chart_type=ChartType.FOREST,
            title=info["message"],
            capability_unavailable=True,
            placeholder={
                "title": info["message"],
                "detail": info["detail"],
                "suggestion": info["suggestion"],
                "kind": info["kind"],
            },
        )

    selection = request.selection
    forest_var = _require_numeric(request, selection.forest_var, "forest_var")
    group = _group_column(request)

    rows = aggregate_forest(
        request.df,
        forest_var,
        group or NO_GROUP,
        ci_level=selection.ci_level,
        missing_groups=request.missing_groups,
    )
    title = f"Forest Plot: {forest_var} by {group}" if group else f"Forest Plot: {forest_var}"
    return ChartSpec(
        chart_type=ChartType.FOREST,
        title=title,
        x_column=forest_var,
        color_column=group,
        data=[row.model_dump() for row in rows],
        forest_rows=rows,
        spec=generator.forest_spec(forest_var, title, show_ci=selection.show_ci),
    )


CHART_BUILDERS: Dict[ChartType, Callable[[ChartRequest], ChartSpec]] = {
    ChartType.BAR: build_bar,
    ChartType.SCATTER: build_scatter,
    ChartType.LINE: build_line,
    ChartType.BOX: build_box,
    ChartType.HISTOGRAM: build_histogram,
    ChartType.HEATMAP: build_heatmap,
    ChartType.FOREST: build_forest,
}

_unhandled = set(ChartType) - set(CHART_BUILDERS)
if _unhandled:
    raise RuntimeError(f"No chart builder for: {sorted(t.value for t in _unhandled)}")


@track_performance("render_chart")
def render_chart(
    df: pd.DataFrame,
    selection: Selection,
    schema: Optional[DatasetSchema] = None,
    forest_available: bool = True,
    histogram_bins: int = DEFAULT_HISTOGRAM_BINS,
    missing_groups: str = MISSING_GROUPS_EXCLUDE,
) -> ChartResult:
    """
    Build the chart for ``selection.chart_type``.

    Never raises for data or selection problems: those come back as an
    ErrorChart carrying a user-facing message.
    """
    chart_type = ChartType(selection.chart_type)
    request = ChartRequest(
        df=df,
        schema=schema or inspect_schema(df),
        selection=selection,
        forest_available=forest_available,
        histogram_bins=histogram_bins,
        missing_groups=missing_groups,
    )

    try:
        return CHART_BUILDERS[chart_type](request)
    except DashboardError as e:
        logger.info(f"{chart_type.value} chart not rendered ({e.kind}): {e.message}")
        return ErrorChart(chart_type=chart_type, error=e.to_response())
    except Exception as e:
        logger.warning(f"{chart_type.value} chart construction failed: {e}", exc_info=True)
        error = get_error_response(ErrorCodes.PROCESSING_ERROR, f"Error: {e}")
        error["kind"] = "render_failed"
        return ErrorChart(chart_type=chart_type, error=error)
