"""
Per-session dashboard state.

A session owns one dataset, its schema and the user's selection. Changes
propagate through an explicit observer chain:

    dataset_changed -> schema recomputed -> schema_changed -> selection defaults

Loads are serialized by a per-session lock. Readers work on a snapshot taken
under the state lock, so a concurrent load never tears what they see.
"""
import logging
import math
from dataclasses import dataclass
from threading import Lock, RLock
from typing import Any, Callable, List, Optional, Union

import pandas as pd

from dashboard.core.capabilities import get_capabilities
from dashboard.core.config import Settings, get_settings
from dashboard.core.errors import NoDataLoadedError
from dashboard.core.schemas import (
    ChartResult,
    ChartType,
    ColumnSummary,
    DatasetMetadata,
    DatasetSchema,
    DataSource,
    PreviewPage,
    Selection,
    SelectionUpdate,
)
from dashboard.services.dispatcher import render_chart
from dashboard.services.loader import load_dataset
from dashboard.services.profiler import (
    build_metadata,
    format_metadata_report,
    inspect_schema,
    summarize_dataset,
    to_records,
)
from dashboard.services.selection import apply_selection_update, default_selection

logger = logging.getLogger(__name__)


class Signal:
    """Ordered list of callbacks fired synchronously on emit."""

    def __init__(self, name: str):
        self.name = name
        self._handlers: List[Callable[[Any], None]] = []

    def connect(self, handler: Callable[[Any], None]) -> None:
        self._handlers.append(handler)

    def emit(self, value: Any) -> None:
        for handler in list(self._handlers):
            handler(value)


@dataclass(frozen=True)
class SessionSnapshot:
    dataset: pd.DataFrame
    schema: DatasetSchema
    selection: Selection


class DashboardSession:
    def __init__(self, session_id: str, settings: Optional[Settings] = None,
                 forest_available: Optional[bool] = None):
        self.session_id = session_id
        self.settings = settings or get_settings()
        self.forest_available = (
            get_capabilities().forest_plot if forest_available is None else forest_available
        )

        self._load_lock = Lock()
        self._state_lock = RLock()
        self._dataset: Optional[pd.DataFrame] = None
        self._schema: Optional[DatasetSchema] = None
        self._selection = Selection(
            source_param=self.settings.default_data_url,
            ci_level=self.settings.default_ci_level,
        )

        self.dataset_changed = Signal("dataset_changed")
        self.schema_changed = Signal("schema_changed")
        self.dataset_changed.connect(self._recompute_schema)
        self.schema_changed.connect(self._reset_selection_defaults)

    def _recompute_schema(self, df: pd.DataFrame) -> None:
        self._schema = inspect_schema(df)
        self.schema_changed.emit(self._schema)

    def _reset_selection_defaults(self, schema: DatasetSchema) -> None:
        self._selection = default_selection(schema, self._selection)

    @property
    def has_data(self) -> bool:
        with self._state_lock:
            return self._dataset is not None

    @property
    def schema(self) -> Optional[DatasetSchema]:
        with self._state_lock:
            return self._schema

    @property
    def selection(self) -> Selection:
        with self._state_lock:
            return self._selection

    def load(self, source: Union[DataSource, str], param: Union[str, bytes, None] = None,
             filename: Optional[str] = None) -> DatasetSchema:
        """
        Load a dataset and replace the current one wholesale.

        On failure the exception propagates and the previous dataset, schema
        and selection are left exactly as they were.
        """
        source = DataSource(source)
        with self._load_lock:
            df = load_dataset(source, param, filename=filename, settings=self.settings)

            with self._state_lock:
                previous = (self._dataset, self._schema, self._selection)
                source_param = param if source == DataSource.URL else filename
                self._selection = self._selection.model_copy(
                    update={"data_source": source, "source_param": source_param}
                )
                self._dataset = df
                try:
                    self.dataset_changed.emit(df)
                except Exception:
                    self._dataset, self._schema, self._selection = previous
                    raise

                logger.info(
                    f"Session {self.session_id[:8]} loaded {source.value} dataset: "
                    f"{len(df)} rows, {len(df.columns)} columns"
                )
                return self._schema

    def update_selection(self, update: SelectionUpdate) -> Selection:
        with self._state_lock:
            self._selection = apply_selection_update(self._selection, update)
            return self._selection

    def snapshot(self) -> SessionSnapshot:
        """Consistent copy of dataset, schema and selection."""
        with self._state_lock:
            if self._dataset is None:
                raise NoDataLoadedError()
            return SessionSnapshot(
                dataset=self._dataset.copy(deep=True),
                schema=self._schema,
                selection=self._selection,
            )

    def render(self, chart_type: Optional[ChartType] = None) -> ChartResult:
        """Render the current selection, optionally as another chart type without storing it."""
        snap = self.snapshot()
        selection = snap.selection
        if chart_type is not None:
            selection = selection.model_copy(update={"chart_type": ChartType(chart_type)})
        return render_chart(
            snap.dataset,
            selection,
            schema=snap.schema,
            forest_available=self.forest_available,
            histogram_bins=self.settings.histogram_bins,
            missing_groups=self.settings.forest_missing_groups,
        )

    def preview(self, page: int = 1, page_size: int = 10) -> PreviewPage:
        df = self.snapshot().dataset
        page_size = max(1, min(page_size, self.settings.max_preview_rows))
        total_rows = len(df)
        total_pages = max(1, math.ceil(total_rows / page_size))
        page = max(1, min(page, total_pages))
        start = (page - 1) * page_size
        return PreviewPage(
            page=page,
            page_size=page_size,
            total_rows=total_rows,
            total_pages=total_pages,
            columns=[str(col) for col in df.columns],
            rows=to_records(df.iloc[start:start + page_size]),
        )

    def metadata(self) -> DatasetMetadata:
        return build_metadata(self.snapshot().dataset)

    def metadata_report(self) -> str:
        return format_metadata_report(self.metadata())

    def summary(self) -> List[ColumnSummary]:
        return summarize_dataset(self.snapshot().dataset)
