import os
import platform
import time

import django
import psutil
from django.conf import settings
from django.db import connection
from django.utils import timezone
from drf_spectacular.utils import OpenApiExample, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.response import Response

from ..conf import engine_setting


@extend_schema(
    summary="Health Check",
    description="Health check endpoint reporting API, database, market source and system status",
    responses={
        200: OpenApiResponse(
            description="API is healthy",
            examples=[
                OpenApiExample(
                    "Health Response",
                    value={
                        "status": "healthy",
                        "timestamp": "2026-05-28T07:35:20Z",
                        "version": "0.1.0",
                        "environment": "production",
                        "database": {
                            "status": "connected",
                            "type": "sqlite"
                        },
                        "engine": {
                            "sources": ["euler-vaults", "defillama"],
                            "source_timeout_seconds": 10.0
                        },
                        "system": {
                            "memory_usage": "25%",
                            "cpu_usage": "10%"
                        },
                        "uptime": "2d 3h 45m"
                    }
                )
            ]
        ),
    },
    tags=["Health"]
)
@api_view(['GET'])
@authentication_classes([])
@permission_classes([])
def health_check(request):
    """
    Health check for the API process.
    The engine keeps no database state, so a disconnected database is reported but not fatal.
    """
    db_status = "connected"
    db_type = "unknown"
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            db_type = connection.vendor
    except Exception:
        db_status = "disconnected"

    memory_usage = f"{psutil.virtual_memory().percent}%"
    cpu_usage = f"{psutil.cpu_percent(interval=0.1)}%"

    process = psutil.Process(os.getpid())
    uptime_seconds = time.time() - process.create_time()
    days, remainder = divmod(uptime_seconds, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes, _ = divmod(remainder, 60)
    uptime = f"{int(days)}d {int(hours)}h {int(minutes)}m"

    sources = [s.get('name') or s.get('type') for s in engine_setting('SOURCES')]

    return Response({
        'status': 'healthy',
        'name': 'Yield Optimizer Backend',
        'timestamp': timezone.now().isoformat(),
        'version': getattr(settings, 'VERSION', '0.1.0'),
        'environment': getattr(settings, 'ENVIRONMENT', 'development'),
        'database': {
            'status': db_status,
            'type': db_type
        },
        'engine': {
            'sources': sources,
            'source_timeout_seconds': engine_setting('SOURCE_TIMEOUT_SECONDS'),
        },
        'system': {
            'memory_usage': memory_usage,
            'cpu_usage': cpu_usage,
            'platform': platform.platform(),
            'python_version': platform.python_version()
        },
        'django_version': django.__version__,
        'uptime': uptime
    }, status=status.HTTP_200_OK)
