"""
Tests for selection defaults and edits.
"""
import pytest
from pydantic import ValidationError
from dashboard.core.schemas import NO_GROUP, ChartType, DataSource, Selection, SelectionUpdate
from dashboard.services.profiler import inspect_schema
from dashboard.services.selection import apply_selection_update, default_selection


@pytest.mark.unit
def test_default_selection(mixed_df):
    """x is the first column, y and forest the first numeric column."""
    selection = default_selection(inspect_schema(mixed_df))

    assert selection.x_var == "city"
    assert selection.y_var == "score"
    assert selection.forest_var == "score"
    assert selection.group_var == NO_GROUP


@pytest.mark.unit
def test_default_selection_keeps_non_variable_fields(mixed_df):
    previous = Selection(
        data_source=DataSource.SAMPLE,
        chart_type=ChartType.FOREST,
        show_ci=False,
        ci_level=0.9,
        group_var="old_group",
        x_var="old_x",
    )
    selection = default_selection(inspect_schema(mixed_df), previous)

    assert selection.chart_type == ChartType.FOREST
    assert selection.data_source == DataSource.SAMPLE
    assert selection.show_ci is False
    assert selection.ci_level == 0.9
    assert selection.group_var == NO_GROUP
    assert selection.x_var == "city"


@pytest.mark.unit
def test_default_selection_fallback_schema():
    """When nothing is numeric the first column is used for numeric selectors."""
    import pandas as pd
    schema = inspect_schema(pd.DataFrame({"a": ["x"], "b": ["y"]}))
    selection = default_selection(schema)

    assert selection.y_var == "a"
    assert selection.forest_var == "a"


@pytest.mark.unit
def test_apply_update_only_named_fields():
    selection = Selection(x_var="a", y_var="b", chart_type=ChartType.SCATTER)
    updated = apply_selection_update(selection, SelectionUpdate(y_var="c"))

    assert updated.y_var == "c"
    assert updated.x_var == "a"
    assert updated.chart_type == ChartType.SCATTER
    assert selection.y_var == "b"


@pytest.mark.unit
def test_apply_update_clearing_group():
    selection = Selection(group_var="team")
    updated = apply_selection_update(selection, SelectionUpdate(group_var=None))
    assert updated.group_var == NO_GROUP


@pytest.mark.unit
def test_apply_update_null_required_field_ignored():
    selection = Selection(chart_type=ChartType.BOX, ci_level=0.9)
    updated = apply_selection_update(selection, SelectionUpdate(chart_type=None, ci_level=None))

    assert updated.chart_type == ChartType.BOX
    assert updated.ci_level == 0.9


@pytest.mark.unit
def test_apply_update_accepts_stale_column():
    """Edits are not checked against the current dataset."""
    updated = apply_selection_update(Selection(), SelectionUpdate(x_var="not_a_column"))
    assert updated.x_var == "not_a_column"


@pytest.mark.unit
def test_apply_update_empty_returns_same():
    selection = Selection(x_var="a")
    assert apply_selection_update(selection, SelectionUpdate()) is selection


@pytest.mark.unit
def test_ci_level_bounds():
    with pytest.raises(ValidationError):
        SelectionUpdate(ci_level=0.5)
    with pytest.raises(ValidationError):
        Selection(ci_level=0.999)

    assert Selection(ci_level=0.80).ci_level == 0.80
    assert Selection(ci_level=0.99).ci_level == 0.99


@pytest.mark.unit
def test_unknown_chart_type_rejected():
    with pytest.raises(ValidationError):
        SelectionUpdate(chart_type="pie")
