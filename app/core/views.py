"""
Infrastructure endpoints that sit outside the settlement domain.
"""

import logging

from django.core.cache import cache
from django.db import DatabaseError, connection
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def _database_ok() -> bool:
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
    except DatabaseError:
        logger.exception("Health check: database unreachable")
        return False
    return True


def _cache_ok() -> bool:
    # django-redis is configured with IGNORE_EXCEPTIONS, so a dead Redis
    # shows up as a cache miss rather than an exception.
    cache.set("health_check", "ok", timeout=1)
    return cache.get("health_check") == "ok"


def health_check(request):
    """
    Liveness/readiness probe used by Docker, Kubernetes and load balancers.

    The database is required; the cache is reported but never fails the
    probe because jobs and endpoints degrade gracefully without it.

    HTTP Status Codes:
        200: Database reachable
        503: Database unreachable
    """
    database_ok = _database_ok()
    health_status = {
        "status": "healthy" if database_ok else "unhealthy",
        "database": "connected" if database_ok else "disconnected",
        "cache": "connected" if _cache_ok() else "disconnected",
    }
    return JsonResponse(health_status, status=200 if database_ok else 503)
