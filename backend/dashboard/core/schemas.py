from enum import Enum
from pydantic import BaseModel, Field
from typing import List, Optional, Any, Dict, Union

NO_GROUP = "None"


class DataSource(str, Enum):
    URL = "url"
    UPLOAD = "upload"
    SAMPLE = "sample"


class ChartType(str, Enum):
    BAR = "bar"
    SCATTER = "scatter"
    LINE = "line"
    BOX = "box"
    HISTOGRAM = "histogram"
    HEATMAP = "heatmap"
    FOREST = "forest"


class DatasetSchema(BaseModel):
    all_columns: List[str]
    numeric_columns: List[str]  # falls back to all_columns when nothing is numeric
    numeric_fallback: bool = False
    missing_counts: Dict[str, int]
    missing_pct: Dict[str, float]
    row_count: int

    @property
    def detected_numeric(self) -> List[str]:
        """Numeric columns without the fallback applied."""
        return [] if self.numeric_fallback else list(self.numeric_columns)


class ColumnMetadata(BaseModel):
    name: str
    dtype: str  # 'numeric', 'integer', 'text', 'categorical', 'boolean', 'datetime'
    missing_count: int
    missing_pct: float
    min: Optional[float] = None
    max: Optional[float] = None
    mean: Optional[float] = None
    median: Optional[float] = None
    std: Optional[float] = None


class DatasetMetadata(BaseModel):
    row_count: int
    col_count: int
    columns: List[ColumnMetadata]


class ColumnSummary(BaseModel):
    name: str
    kind: str  # 'numeric' or 'categorical'
    missing_count: int
    # numeric
    min: Optional[float] = None
    q1: Optional[float] = None
    median: Optional[float] = None
    mean: Optional[float] = None
    q3: Optional[float] = None
    max: Optional[float] = None
    # categorical
    count: Optional[int] = None
    unique_count: Optional[int] = None
    top: Optional[str] = None
    top_freq: Optional[int] = None


class Selection(BaseModel):
    data_source: DataSource = DataSource.URL
    source_param: Optional[str] = None  # URL or uploaded filename
    x_var: Optional[str] = None
    y_var: Optional[str] = None
    group_var: str = NO_GROUP
    forest_var: Optional[str] = None
    chart_type: ChartType = ChartType.BAR
    show_ci: bool = True
    ci_level: float = Field(default=0.95, ge=0.80, le=0.99)


class SelectionUpdate(BaseModel):
    """Partial selection edit; unset fields are left alone."""
    data_source: Optional[DataSource] = None
    source_param: Optional[str] = None
    x_var: Optional[str] = None
    y_var: Optional[str] = None
    group_var: Optional[str] = None
    forest_var: Optional[str] = None
    chart_type: Optional[ChartType] = None
    show_ci: Optional[bool] = None
    ci_level: Optional[float] = Field(default=None, ge=0.80, le=0.99)


class ForestRow(BaseModel):
    label: str
    mean: Optional[float] = None
    sd: Optional[float] = None
    n: int
    se: Optional[float] = None
    ci_lower: Optional[float] = None
    ci_upper: Optional[float] = None


class ChartSpec(BaseModel):
    status: str = "ok"
    chart_type: ChartType
    title: str
    x_column: Optional[str] = None
    y_column: Optional[str] = None
    color_column: Optional[str] = None
    data: List[Dict[str, Any]] = []
    forest_rows: Optional[List[ForestRow]] = None
    spec: Optional[Dict[str, Any]] = None  # The Vega-Lite spec
    capability_unavailable: bool = False
    placeholder: Optional[Dict[str, str]] = None


class ErrorChart(BaseModel):
    status: str = "error"
    chart_type: ChartType
    error: Dict[str, Any]


ChartResult = Union[ChartSpec, ErrorChart]


class LoadRequest(BaseModel):
    source: DataSource
    url: Optional[str] = None


class LoadResult(BaseModel):
    session_id: str
    source: DataSource
    row_count: int
    col_count: int
    dataset_schema: DatasetSchema
    selection: Selection


class PreviewPage(BaseModel):
    page: int
    page_size: int
    total_rows: int
    total_pages: int
    columns: List[str]
    rows: List[Dict[str, Any]]
