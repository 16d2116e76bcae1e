import logging

from django.apps import AppConfig

logger = logging.getLogger(__name__)


class YieldEngineConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'yield_engine'
    verbose_name = 'Yield Engine'

    def ready(self):
        """
        Validate the configured market sources at startup so a typo in
        YIELD_ENGINE['SOURCES'] fails loudly instead of on the first request.
        """
        from .conf import engine_setting
        from .exceptions import InvalidConfigurationError
        from .sources import build_source

        for definition in engine_setting('SOURCES'):
            try:
                build_source(definition)
            except InvalidConfigurationError as e:
                logger.error(f"Invalid market source configuration: {str(e)}")
                raise
        logger.info("Yield engine configuration loaded")
