"""
Monitoring package for the AcademyInsight crawler.

Provides the FastAPI server, dashboard aggregate queries, and the
TeacherHub analytics client.
"""

from academy_insight.monitoring.analytics_client import TeacherHubClient, TTLCache
from academy_insight.monitoring.api_server import app, set_dependencies
from academy_insight.monitoring.dashboard_queries import DashboardQueries

__all__ = [
    "DashboardQueries",
    "TTLCache",
    "TeacherHubClient",
    "app",
    "set_dependencies",
]
