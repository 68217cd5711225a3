"""
Rendering capabilities of this deployment.

Resolved once on first use and fixed for the lifetime of the process.
"""
import logging
from typing import Optional
from pydantic import BaseModel
from dashboard.core.config import get_settings

logger = logging.getLogger(__name__)


class Capabilities(BaseModel):
    forest_plot: bool


_capabilities: Optional[Capabilities] = None


def get_capabilities() -> Capabilities:
    """Get the process-wide capability flags."""
    global _capabilities
    if _capabilities is None:
        _capabilities = Capabilities(forest_plot=get_settings().forest_plot_enabled)
        if not _capabilities.forest_plot:
            logger.warning("Forest plot rendering is disabled for this deployment")
    return _capabilities
