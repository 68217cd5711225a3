"""
Tests for chart dispatch.
"""
import pytest
import numpy as np
import pandas as pd
from dashboard.core.schemas import ChartSpec, ChartType, ErrorChart, Selection
from dashboard.services import dispatcher
from dashboard.services.dispatcher import CHART_BUILDERS, render_chart
from dashboard.services.generator import COUNT_FIELD, ORDER_FIELD


def _render(df, **selection):
    return render_chart(df, Selection(**selection))


@pytest.mark.unit
def test_every_chart_type_has_a_builder():
    assert set(CHART_BUILDERS) == set(ChartType)


@pytest.mark.unit
def test_bar_counts(mixed_df):
    chart = _render(mixed_df, chart_type="bar", x_var="city")

    assert isinstance(chart, ChartSpec)
    assert chart.title == "Bar Chart of city"
    assert {row["city"]: row[COUNT_FIELD] for row in chart.data} == {"Leeds": 2, "York": 2, "Hull": 1}


@pytest.mark.unit
def test_bar_grouped(sample_df):
    chart = _render(sample_df, chart_type="bar", x_var="Product", group_var="Region")

    assert chart.color_column == "Region"
    assert len(chart.data) == 16
    assert sum(row[COUNT_FIELD] for row in chart.data) == 200


@pytest.mark.unit
def test_scatter(sample_df):
    chart = _render(sample_df, chart_type="scatter", x_var="Sales", y_var="Profit")

    assert chart.title == "Scatter: Profit vs Sales"
    assert len(chart.data) == 200
    assert set(chart.data[0]) == {"Sales", "Profit"}


@pytest.mark.unit
def test_scatter_text_y_is_unsupported(mixed_df):
    """A text column on the value axis is an error chart, not an exception."""
    chart = _render(mixed_df, chart_type="scatter", x_var="count", y_var="city")

    assert isinstance(chart, ErrorChart)
    assert chart.status == "error"
    assert chart.error["kind"] == "unsupported_type"


@pytest.mark.unit
def test_line_sorts_by_x_with_missing_last():
    df = pd.DataFrame({"x": [3.0, 1.0, 2.0, np.nan, 1.0], "y": [30, 10, 20, 99, 11]})
    chart = _render(df, chart_type="line", x_var="x", y_var="y")

    assert [row["x"] for row in chart.data] == [1.0, 1.0, 2.0, 3.0, None]
    assert [row["y"] for row in chart.data] == [10, 11, 20, 30, 99]
    assert [row[ORDER_FIELD] for row in chart.data] == [0, 1, 2, 3, 4]


@pytest.mark.unit
def test_line_grouped_keeps_row_order():
    df = pd.DataFrame({"x": [3, 1, 2, 4], "y": [1, 2, 3, 4], "g": ["a", "b", "a", "b"]})
    chart = _render(df, chart_type="line", x_var="x", y_var="y", group_var="g")

    assert [row["x"] for row in chart.data] == [3, 1, 2, 4]
    assert chart.spec["encoding"]["detail"]["field"] == "g"


@pytest.mark.unit
def test_box(sample_df):
    chart = _render(sample_df, chart_type="box", x_var="Region", y_var="Sales")
    assert chart.title == "Box Plot: Sales by Region"
    assert chart.spec["mark"]["type"] == "boxplot"


@pytest.mark.unit
def test_histogram_numeric(mixed_df):
    chart = render_chart(mixed_df, Selection(chart_type="histogram", x_var="score"), histogram_bins=4)

    assert chart.title == "Histogram of score"
    assert len(chart.data) == 4
    assert sum(row[COUNT_FIELD] for row in chart.data) == 4
    assert chart.data[0]["bin_start"] == 1.0
    assert chart.data[-1]["bin_end"] == 5.0


@pytest.mark.unit
def test_histogram_text_falls_back_to_counts(mixed_df):
    chart = _render(mixed_df, chart_type="histogram", x_var="city")

    assert chart.title == "Count of city"
    assert chart.spec["mark"]["type"] == "bar"


@pytest.mark.unit
def test_histogram_all_missing():
    chart = _render(pd.DataFrame({"x": [np.nan, np.nan]}), chart_type="histogram", x_var="x")
    assert chart.error["kind"] == "insufficient_data"


@pytest.mark.unit
def test_heatmap(sample_df):
    chart = _render(sample_df, chart_type="heatmap")
    cells = {(row["var1"], row["var2"]): row["correlation"] for row in chart.data}

    assert len(cells) == 16
    assert cells[("Sales", "Sales")] == pytest.approx(1.0)
    assert cells[("Sales", "Profit")] == pytest.approx(cells[("Profit", "Sales")])


@pytest.mark.unit
def test_heatmap_needs_two_numeric_columns():
    df = pd.DataFrame({"a": [1, 2, 3], "b": ["x", "y", "z"]})
    chart = _render(df, chart_type="heatmap")

    assert isinstance(chart, ErrorChart)
    assert chart.error["kind"] == "insufficient_data"
    assert "Need 2+ numeric variables" in chart.error["detail"]


@pytest.mark.unit
def test_heatmap_ignores_fallback_columns():
    df = pd.DataFrame({"a": ["p", "q"], "b": ["x", "y"]})
    chart = _render(df, chart_type="heatmap")
    assert chart.error["kind"] == "insufficient_data"


@pytest.mark.unit
def test_forest_grouped(sample_df):
    chart = _render(sample_df, chart_type="forest", forest_var="Sales", group_var="Region")

    assert chart.title == "Forest Plot: Sales by Region"
    assert [row.label for row in chart.forest_rows] == ["North", "South", "East", "West"]
    assert [row.n for row in chart.forest_rows] == [50, 50, 50, 50]
    assert chart.data[0]["label"] == "North"


@pytest.mark.unit
def test_forest_without_ci_layer(sample_df):
    chart = _render(sample_df, chart_type="forest", forest_var="Sales", show_ci=False)

    assert chart.title == "Forest Plot: Sales"
    assert len(chart.spec["layer"]) == 1
    assert chart.forest_rows[0].ci_lower is not None


@pytest.mark.unit
def test_forest_capability_unavailable(sample_df):
    chart = render_chart(
        sample_df, Selection(chart_type="forest", forest_var="Sales"), forest_available=False
    )

    assert isinstance(chart, ChartSpec)
    assert chart.capability_unavailable is True
    assert chart.placeholder["title"] == "Forest plot not available"
    assert chart.placeholder["kind"] == "capability_unavailable"
    assert chart.forest_rows is None


@pytest.mark.unit
def test_forest_missing_variable(sample_df):
    chart = _render(sample_df, chart_type="forest", forest_var=None)
    assert chart.error["kind"] == "missing_required_field"


@pytest.mark.unit
def test_unknown_column_is_error_chart(mixed_df):
    chart = _render(mixed_df, chart_type="bar", x_var="gone")
    assert chart.error["kind"] == "unknown_column"
    assert chart.error["code"] == "UNKNOWN_COLUMN"


@pytest.mark.unit
def test_unknown_group_column_is_error_chart(mixed_df):
    chart = _render(mixed_df, chart_type="scatter", x_var="count", y_var="score", group_var="gone")
    assert chart.error["kind"] == "unknown_column"


@pytest.mark.unit
def test_unexpected_failure_is_error_chart(mixed_df, monkeypatch):
    def broken(request):
        raise RuntimeError("boom")

    monkeypatch.setitem(dispatcher.CHART_BUILDERS, ChartType.BAR, broken)
    chart = _render(mixed_df, chart_type="bar", x_var="city")

    assert isinstance(chart, ErrorChart)
    assert chart.error["kind"] == "render_failed"
    assert "boom" in chart.error["detail"]


@pytest.mark.unit
def test_heatmap_uses_pairwise_complete_rows():
    """Each pair is correlated over the rows both columns share."""
    df = pd.DataFrame({
        "a": [1.0, 2.0, 3.0, 4.0, np.nan],
        "b": [1.0, 3.0, 2.0, 5.0, 9.0],
        "c": [np.nan, 5.0, 1.0, 2.0, 3.0],
    })
    chart = _render(df, chart_type="heatmap")
    cells = {(row["var1"], row["var2"]): row["correlation"] for row in chart.data}

    pairwise = np.corrcoef([1.0, 2.0, 3.0, 4.0], [1.0, 3.0, 2.0, 5.0])[0, 1]
    listwise = np.corrcoef([2.0, 3.0, 4.0], [3.0, 2.0, 5.0])[0, 1]
    assert cells[("a", "b")] == pytest.approx(pairwise)
    assert cells[("a", "b")] != pytest.approx(listwise)
    assert cells[("b", "c")] == pytest.approx(np.corrcoef([3.0, 2.0, 5.0, 9.0], [5.0, 1.0, 2.0, 3.0])[0, 1])


@pytest.mark.unit
def test_bar_with_column_named_like_count_field():
    df = pd.DataFrame({COUNT_FIELD: ["x", "y", "x"]})
    chart = _render(df, chart_type="bar", x_var=COUNT_FIELD)

    assert chart.status == "ok"
    count_field = chart.spec["encoding"]["y"]["field"]
    assert count_field != COUNT_FIELD
    assert {row[COUNT_FIELD]: row[count_field] for row in chart.data} == {"x": 2, "y": 1}


@pytest.mark.unit
def test_line_with_column_named_like_order_field():
    df = pd.DataFrame({ORDER_FIELD: [2.0, 1.0], "y": [20.0, 10.0]})
    chart = _render(df, chart_type="line", x_var=ORDER_FIELD, y_var="y")

    assert chart.status == "ok"
    order_field = chart.spec["encoding"]["order"]["field"]
    assert order_field != ORDER_FIELD
    assert [row[order_field] for row in chart.data] == [0, 1]
    assert [row[ORDER_FIELD] for row in chart.data] == [1.0, 2.0]
