"""
Selection defaults and edits.

Defaults are regenerated whenever the schema changes. Edits overwrite only the
fields they name and are not checked against the schema; a selection that
points at a column from an earlier dataset stays until the next reset.
"""
import logging
from typing import Optional
from dashboard.core.schemas import NO_GROUP, DatasetSchema, Selection, SelectionUpdate

logger = logging.getLogger(__name__)

# never cleared by an explicit null
_REQUIRED_FIELDS = frozenset(("data_source", "chart_type", "show_ci", "ci_level"))


def default_selection(schema: DatasetSchema, previous: Optional[Selection] = None) -> Selection:
    """
    Variable defaults for a freshly inspected dataset.

    Chart type, CI options and the data source are carried over from the
    previous selection.
    """
    previous = previous or Selection()
    first_numeric = schema.numeric_columns[0] if schema.numeric_columns else None

    return previous.model_copy(update={
        "x_var": schema.all_columns[0] if schema.all_columns else None,
        "y_var": first_numeric,
        "group_var": NO_GROUP,
        "forest_var": first_numeric,
    })


def apply_selection_update(selection: Selection, update: SelectionUpdate) -> Selection:
    """Return a new selection with the fields set in ``update`` overwritten."""
    changes = update.model_dump(exclude_unset=True)
    if "group_var" in changes and changes["group_var"] is None:
        changes["group_var"] = NO_GROUP
    changes = {
        key: value for key, value in changes.items()
        if value is not None or key not in _REQUIRED_FIELDS
    }
    if not changes:
        return selection

    merged = Selection.model_validate({**selection.model_dump(), **changes})
    logger.debug(f"Selection updated: {sorted(changes)}")
    return merged
