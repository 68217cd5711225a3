"""
Error taxonomy and user-friendly error messages.

Every failure the dashboard recovers from is a DashboardError subclass that
knows how to render itself as a notification payload.
"""
from typing import Dict, Optional, Any

# Error codes
class ErrorCodes:
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    FILE_EMPTY = "FILE_EMPTY"
    INVALID_FILE_TYPE = "INVALID_FILE_TYPE"
    NETWORK_ERROR = "NETWORK_ERROR"
    PARSE_ERROR = "PARSE_ERROR"
    MISSING_FIELD = "MISSING_FIELD"
    UNKNOWN_COLUMN = "UNKNOWN_COLUMN"
    INSUFFICIENT_DATA = "INSUFFICIENT_DATA"
    UNSUPPORTED_TYPE = "UNSUPPORTED_TYPE"
    CAPABILITY_UNAVAILABLE = "CAPABILITY_UNAVAILABLE"
    NO_DATA_LOADED = "NO_DATA_LOADED"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    PROCESSING_ERROR = "PROCESSING_ERROR"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    TIMEOUT = "TIMEOUT"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"

ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    ErrorCodes.FILE_TOO_LARGE: {
        "message": "Your file is too large",
        "detail": "The uploaded file exceeds the size limit for this dashboard.",
        "suggestion": "Upload a smaller extract, or only the columns you want to chart."
    },
    ErrorCodes.FILE_EMPTY: {
        "message": "Your file looks empty",
        "detail": "We couldn't find any rows in the data you provided.",
        "suggestion": "Make sure the file has a header row followed by data, then load it again."
    },
    ErrorCodes.INVALID_FILE_TYPE: {
        "message": "We need a CSV file",
        "detail": "Only comma-separated (.csv) files can be loaded.",
        "suggestion": "Export your spreadsheet as CSV and upload it again."
    },
    ErrorCodes.NETWORK_ERROR: {
        "message": "We couldn't download that dataset",
        "detail": "The URL could not be reached, timed out, or returned an error status.",
        "suggestion": "Check the URL points to a raw CSV file that is publicly reachable, then press Load Data again."
    },
    ErrorCodes.PARSE_ERROR: {
        "message": "We're having trouble reading your data",
        "detail": "The content is not a well-formed CSV table.",
        "suggestion": "Check that the first row holds column names and every row has the same number of fields."
    },
    ErrorCodes.MISSING_FIELD: {
        "message": "Something is missing",
        "detail": "A required input for this action has not been selected.",
        "suggestion": "Fill in the highlighted field and try again."
    },
    ErrorCodes.UNKNOWN_COLUMN: {
        "message": "That column is no longer available",
        "detail": "The selection refers to a column that is not in the current dataset.",
        "suggestion": "Pick a column from the current dataset's variable list."
    },
    ErrorCodes.INSUFFICIENT_DATA: {
        "message": "Not enough data for this chart",
        "detail": "The current dataset does not have what this chart type needs.",
        "suggestion": "Choose another chart type or load a dataset with more numeric columns."
    },
    ErrorCodes.UNSUPPORTED_TYPE: {
        "message": "This column can't be used here",
        "detail": "The selected column has the wrong type for this chart.",
        "suggestion": "Select a numeric column for the value axis."
    },
    ErrorCodes.CAPABILITY_UNAVAILABLE: {
        "message": "Forest plot not available",
        "detail": "Forest plot rendering is not enabled on this server.",
        "suggestion": "Please select another chart type or contact the administrator."
    },
    ErrorCodes.NO_DATA_LOADED: {
        "message": "No data loaded yet",
        "detail": "Load a dataset before asking for previews, statistics or charts.",
        "suggestion": "Pick a data source and press Load Data."
    },
    ErrorCodes.SESSION_NOT_FOUND: {
        "message": "Session not found",
        "detail": "This dashboard session does not exist or has expired.",
        "suggestion": "Start a new session."
    },
    ErrorCodes.PROCESSING_ERROR: {
        "message": "Something went wrong while building the chart",
        "detail": "We hit a snag while processing your data.",
        "suggestion": "Try a different combination of variables or chart type."
    },
    ErrorCodes.RATE_LIMIT_EXCEEDED: {
        "message": "Slow down a bit",
        "detail": "Too many load requests in a short time.",
        "suggestion": "Wait a minute and try again."
    },
    ErrorCodes.TIMEOUT: {
        "message": "This is taking longer than expected",
        "detail": "The request did not finish in time.",
        "suggestion": "Try a smaller dataset."
    },
    ErrorCodes.UNKNOWN_ERROR: {
        "message": "Something unexpected happened",
        "detail": "We encountered an issue we weren't expecting.",
        "suggestion": "Give it another try in a moment."
    }
}

def get_error_response(error_code: str, additional_detail: Optional[str] = None) -> Dict[str, str]:
    """
    Get user-friendly error response for an error code.

    Args:
        error_code: One of the ErrorCodes constants
        additional_detail: Optional additional detail to append

    Returns:
        Dictionary with code, message, detail, and suggestion
    """
    error_info = ERROR_MESSAGES.get(error_code, ERROR_MESSAGES[ErrorCodes.UNKNOWN_ERROR])

    response = {
        "code": error_code,
        "message": error_info["message"],
        "detail": error_info["detail"],
        "suggestion": error_info["suggestion"]
    }

    if additional_detail:
        response["detail"] = f"{response['detail']} {additional_detail}"

    return response


class DashboardError(Exception):
    """Base class for recoverable dashboard failures."""

    status_code = 400
    kinds: tuple = ()

    def __init__(self, kind: str, message: str, code: Optional[str] = None):
        if self.kinds and kind not in self.kinds:
            raise ValueError(f"{type(self).__name__} kind must be one of {self.kinds}, got '{kind}'")
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.code = code or self.default_code(kind)

    def default_code(self, kind: str) -> str:
        return ErrorCodes.UNKNOWN_ERROR

    def to_response(self, correlation_id: Optional[str] = None) -> Dict[str, Any]:
        """Notification payload for the client."""
        response: Dict[str, Any] = get_error_response(self.code, self.message)
        response["kind"] = self.kind
        if correlation_id:
            response["correlation_id"] = correlation_id
        return response


class LoadError(DashboardError):
    """Dataset could not be fetched or parsed. The session keeps its previous data."""

    NETWORK = "network"
    PARSE = "parse"
    kinds = (NETWORK, PARSE)

    def __init__(self, kind: str, message: str, code: Optional[str] = None):
        super().__init__(kind, message, code)
        self.status_code = 502 if kind == self.NETWORK else 400

    def default_code(self, kind: str) -> str:
        return ErrorCodes.NETWORK_ERROR if kind == self.NETWORK else ErrorCodes.PARSE_ERROR


class SelectionError(DashboardError):
    """A required selection is unset or points at a column that does not exist."""

    MISSING_REQUIRED_FIELD = "missing_required_field"
    UNKNOWN_COLUMN = "unknown_column"
    kinds = (MISSING_REQUIRED_FIELD, UNKNOWN_COLUMN)

    def default_code(self, kind: str) -> str:
        return ErrorCodes.MISSING_FIELD if kind == self.MISSING_REQUIRED_FIELD else ErrorCodes.UNKNOWN_COLUMN


class RenderError(DashboardError):
    """Chart cannot be built from the current data and selections."""

    INSUFFICIENT_DATA = "insufficient_data"
    UNSUPPORTED_TYPE = "unsupported_type"
    CAPABILITY_UNAVAILABLE = "capability_unavailable"
    kinds = (INSUFFICIENT_DATA, UNSUPPORTED_TYPE, CAPABILITY_UNAVAILABLE)

    _codes = {
        INSUFFICIENT_DATA: ErrorCodes.INSUFFICIENT_DATA,
        UNSUPPORTED_TYPE: ErrorCodes.UNSUPPORTED_TYPE,
        CAPABILITY_UNAVAILABLE: ErrorCodes.CAPABILITY_UNAVAILABLE,
    }

    def default_code(self, kind: str) -> str:
        return self._codes[kind]


class SessionNotFoundError(DashboardError):
    status_code = 404

    def __init__(self, session_id: str):
        super().__init__("session", f"Unknown session id '{session_id}'.", ErrorCodes.SESSION_NOT_FOUND)


class NoDataLoadedError(DashboardError):
    status_code = 409

    def __init__(self):
        super().__init__("state", "This session has no dataset yet.", ErrorCodes.NO_DATA_LOADED)
