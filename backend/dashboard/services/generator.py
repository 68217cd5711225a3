"""
Vega-Lite chart specification generator.

Each builder returns a spec for data that the dispatcher has already resolved.
The spec reads it from the named dataset "table", which the client binds to
``ChartSpec.data``.
"""
from typing import Dict, Any, Optional

PRIMARY_COLOR = "#4682b4"  # steelblue
FOREST_BOX_COLOR = "#4169e1"  # royalblue
FOREST_LINE_COLOR = "#00008b"  # darkblue

ORDER_FIELD = "__order"
COUNT_FIELD = "__count"


def escape_field(field: str) -> str:
    """
    Escape a column name for use as a Vega-Lite field.

    Vega-Lite reads dots and brackets as nested access and breaks on quotes,
    backslashes and newlines.
    """
    if not field:
        return field

    result = ' '.join(field.replace('\n', ' ').replace('\r', ' ').split())
    result = result.replace('\\', '\\\\')
    for char in ".[]'\"":
        result = result.replace(char, '\\' + char)
    return result


def base_spec(title: str, height: int = 500) -> Dict[str, Any]:
    """Shared title, sizing and theme."""
    display_title = title if len(title) <= 80 else title[:77] + "..."
    return {
        "$schema": "https://vega.github.io/schema/vega-lite/v5.json",
        "title": {
            "text": display_title,
            "fontSize": 16,
            "anchor": "start",
        },
        "width": "container",
        "height": height,
        "config": {
            "axis": {
                "labelFontSize": 11,
                "titleFontSize": 13,
                "grid": True,
                "gridColor": "#f3f4f6",
                "labelLimit": 120,
            },
            "view": {"stroke": "transparent"}
        },
        "data": {"name": "table"}
    }


def _color_encoding(color: str) -> Dict[str, Any]:
    return {
        "field": escape_field(color),
        "type": "nominal",
        "scale": {"scheme": "tableau10"},
        "legend": {"title": color, "orient": "top"}
    }


def bar_spec(x: str, title: str, color: Optional[str] = None,
             count_field: str = COUNT_FIELD) -> Dict[str, Any]:
    """Bars of pre-computed counts per x value, dodged by ``color``."""
    spec = base_spec(title)
    x_field = escape_field(x)
    spec["mark"] = {"type": "bar", "tooltip": True}
    spec["encoding"] = {
        "x": {"field": x_field, "type": "nominal", "sort": None, "title": x,
              "axis": {"labelAngle": -45}},
        "y": {"field": escape_field(count_field), "type": "quantitative", "title": "Count"},
    }
    if color:
        spec["encoding"]["color"] = _color_encoding(color)
        spec["encoding"]["xOffset"] = {"field": escape_field(color), "type": "nominal"}
    else:
        spec["mark"]["color"] = PRIMARY_COLOR
    return spec


def scatter_spec(x: str, y: str, title: str, x_type: str = "quantitative",
                 color: Optional[str] = None) -> Dict[str, Any]:
    spec = base_spec(title)
    spec["mark"] = {"type": "point", "filled": True, "size": 60, "opacity": 0.6}
    spec["encoding"] = {
        "x": {"field": escape_field(x), "type": x_type, "title": x, "scale": {"zero": False}},
        "y": {"field": escape_field(y), "type": "quantitative", "title": y, "scale": {"zero": False}},
        "tooltip": [
            {"field": escape_field(x), "type": x_type, "title": x},
            {"field": escape_field(y), "type": "quantitative", "title": y},
        ],
    }
    if color:
        spec["encoding"]["color"] = _color_encoding(color)
        spec["encoding"]["tooltip"].append({"field": escape_field(color), "type": "nominal", "title": color})
    else:
        spec["mark"]["color"] = PRIMARY_COLOR
    spec["params"] = [{"name": "zoom", "select": "interval", "bind": "scales"}]
    return spec


def line_spec(x: str, y: str, title: str, x_type: str = "quantitative",
              color: Optional[str] = None, order_field: str = ORDER_FIELD) -> Dict[str, Any]:
    """Points are connected in the order given by ``order_field``."""
    spec = base_spec(title)
    spec["mark"] = {"type": "line", "point": True, "strokeWidth": 2}
    spec["encoding"] = {
        "x": {"field": escape_field(x), "type": x_type, "title": x, "sort": None},
        "y": {"field": escape_field(y), "type": "quantitative", "title": y},
        "order": {"field": escape_field(order_field), "type": "quantitative"},
    }
    if color:
        spec["encoding"]["color"] = _color_encoding(color)
        spec["encoding"]["detail"] = {"field": escape_field(color), "type": "nominal"}
    else:
        spec["mark"]["color"] = PRIMARY_COLOR
    return spec


def box_spec(x: str, y: str, title: str, color: Optional[str] = None) -> Dict[str, Any]:
    spec = base_spec(title)
    spec["mark"] = {"type": "boxplot", "extent": 1.5}
    spec["encoding"] = {
        "x": {"field": escape_field(x), "type": "nominal", "title": x, "axis": {"labelAngle": -45}},
        "y": {"field": escape_field(y), "type": "quantitative", "title": y},
    }
    if color:
        spec["encoding"]["color"] = _color_encoding(color)
        spec["encoding"]["xOffset"] = {"field": escape_field(color), "type": "nominal"}
    else:
        spec["mark"]["color"] = PRIMARY_COLOR
    return spec


def histogram_spec(x: str, title: str) -> Dict[str, Any]:
    """Bars spanning pre-computed [bin_start, bin_end) intervals."""
    spec = base_spec(title)
    spec["mark"] = {"type": "bar", "color": PRIMARY_COLOR, "stroke": "white", "tooltip": True}
    spec["encoding"] = {
        "x": {"field": "bin_start", "type": "quantitative", "bin": {"binned": True}, "title": x},
        "x2": {"field": "bin_end"},
        "y": {"field": COUNT_FIELD, "type": "quantitative", "title": "Count"},
    }
    return spec


def correlation_heatmap_spec(title: str = "Correlation Heatmap") -> Dict[str, Any]:
    """Tiles of var1 x var2 coloured by correlation on a fixed [-1, 1] diverging scale."""
    spec = base_spec(title)
    spec["mark"] = {"type": "rect", "tooltip": True}
    spec["encoding"] = {
        "x": {"field": "var1", "type": "nominal", "sort": None, "title": None,
              "axis": {"labelAngle": -45}},
        "y": {"field": "var2", "type": "nominal", "sort": None, "title": None},
        "color": {
            "field": "correlation",
            "type": "quantitative",
            "scale": {"domain": [-1, 1], "range": ["blue", "white", "red"], "domainMid": 0},
            "legend": {"title": "Correlation"}
        },
    }
    return spec


def forest_spec(forest_var: str, title: str, show_ci: bool = True) -> Dict[str, Any]:
    """Point estimate per label with an optional confidence interval rule."""
    spec = base_spec(title)
    spec["height"] = {"step": 40}
    y_enc = {"field": "label", "type": "nominal", "sort": None, "title": None}

    layers = []
    if show_ci:
        layers.append({
            "mark": {"type": "rule", "color": FOREST_LINE_COLOR, "strokeWidth": 2},
            "encoding": {
                "y": y_enc,
                "x": {"field": "ci_lower", "type": "quantitative", "title": forest_var,
                      "scale": {"zero": False}},
                "x2": {"field": "ci_upper"},
            }
        })
    layers.append({
        "mark": {"type": "square", "color": FOREST_BOX_COLOR, "size": 120, "opacity": 1},
        "encoding": {
            "y": y_enc,
            "x": {"field": "mean", "type": "quantitative", "title": forest_var,
                  "scale": {"zero": False}},
            "tooltip": [
                {"field": "label", "type": "nominal"},
                {"field": "mean", "type": "quantitative", "format": ",.2f"},
                {"field": "ci_lower", "type": "quantitative", "format": ",.2f"},
                {"field": "ci_upper", "type": "quantitative", "format": ",.2f"},
                {"field": "n", "type": "quantitative"},
            ]
        }
    })
    spec["layer"] = layers
    return spec
