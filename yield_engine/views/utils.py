import logging
import traceback
from functools import lru_cache

logger = logging.getLogger(__name__)


def log_error(error, context=None, include_traceback=True):
    """Helper function to log errors with context and stack trace."""
    error_context = {
        'error_type': type(error).__name__,
        'error_message': str(error),
        'context': context or {}
    }

    if include_traceback:
        error_context['traceback'] = traceback.format_exc()

    logger.error(
        f"Error: {error_context['error_type']} - {error_context['error_message']}",
        extra={'error_context': error_context}
    )
    return error_context


@lru_cache(maxsize=1)
def get_service():
    """
    Process-wide YieldOptimizationService built from settings.

    Call ``get_service.cache_clear()`` after changing YIELD_ENGINE settings.
    """
    from ..service import build_default_service
    return build_default_service()
