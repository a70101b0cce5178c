"""
Core views providing infrastructure endpoints.

This module contains views that are not part of the business domain but are
essential for application infrastructure, such as health checks.
"""

from __future__ import annotations

import logging

from django.core.cache import cache
from django.db import DatabaseError, connection
from django.http import JsonResponse

from core.protocols import CacheBackend

logger = logging.getLogger(__name__)


def _database_connected() -> bool:
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
    except DatabaseError:
        logger.warning("Health check could not reach the database", exc_info=True)
        return False
    return True


def _cache_connected(backend: CacheBackend) -> bool:
    # django-redis is configured with IGNORE_EXCEPTIONS, so an unreachable
    # Redis shows up as a failed round trip rather than an exception.
    backend.set("health_check", "ok", timeout=1)
    return backend.get("health_check") == "ok"


def health_check(request):
    """
    Health check endpoint for monitoring and orchestration.

    Returns:
        JsonResponse with status and component health:
        - status: "healthy" or "unhealthy"
        - database: "connected" or "disconnected"
        - cache: "connected" or "disconnected"

    HTTP Status Codes:
        200: Database reachable (cache problems only degrade)
        503: Database unreachable
    """
    database_ok = _database_connected()
    cache_ok = _cache_connected(cache)

    health_status = {
        "status": "healthy" if database_ok else "unhealthy",
        "database": "connected" if database_ok else "disconnected",
        "cache": "connected" if cache_ok else "disconnected",
    }
    return JsonResponse(health_status, status=200 if database_ok else 503)
