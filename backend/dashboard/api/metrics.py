"""
Metrics endpoint for performance monitoring.
"""
from fastapi import APIRouter
from dashboard.core.performance import PerformanceMonitor
from dashboard.core.sessions import get_session_store

router = APIRouter()


@router.get("/metrics")
async def get_metrics():
    """
    Stage timings (load, inspect, render, requests) and session store size.
    """
    return {
        'performance': PerformanceMonitor.get_all_metrics(),
        'sessions': get_session_store().get_stats()
    }
