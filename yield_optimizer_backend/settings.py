"""
Django settings for the yield optimizer backend.

Values come from the environment (a local .env file is loaded with
python-dotenv). When AWS_SECRET_NAME is set, the secret's key/value pairs are
loaded into the environment first, so they take precedence over .env.
"""
import json
import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent

load_dotenv(BASE_DIR / '.env')

if os.environ.get('AWS_SECRET_NAME'):
    from .aws_secrets import load_secrets_to_env
    load_secrets_to_env(os.environ['AWS_SECRET_NAME'], os.environ.get('AWS_REGION', 'us-east-1'))


def env_bool(name, default=False):
    return os.environ.get(name, str(default)).lower() in ('1', 'true', 'yes')


def env_json(name, default):
    raw = os.environ.get(name)
    if not raw:
        return default
    return json.loads(raw)


def env_list(name, default=''):
    return [item.strip() for item in os.environ.get(name, default).split(',') if item.strip()]


SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'django-insecure-yield-optimizer-dev-key')
DEBUG = env_bool('DEBUG', False)
ALLOWED_HOSTS = env_list('ALLOWED_HOSTS', 'localhost,127.0.0.1,testserver')

VERSION = os.environ.get('VERSION', '0.1.0')
ENVIRONMENT = os.environ.get('ENVIRONMENT', 'development')

INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'django.contrib.auth',
    'django.contrib.staticfiles',
    'rest_framework',
    'drf_spectacular',
    'yield_engine',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
]

ROOT_URLCONF = 'yield_optimizer_backend.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
            ],
        },
    },
]

WSGI_APPLICATION = 'yield_optimizer_backend.wsgi.application'

# The engine keeps no state of its own; the database only backs Django internals
DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': os.environ.get('SQLITE_PATH', str(BASE_DIR / 'db.sqlite3')),
    }
}

CACHES = {
    'default': {
        'BACKEND': os.environ.get('CACHE_BACKEND', 'django.core.cache.backends.locmem.LocMemCache'),
        'LOCATION': os.environ.get('CACHE_LOCATION', 'yield-optimizer'),
    }
}

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [],
    'DEFAULT_PERMISSION_CLASSES': ['rest_framework.permissions.AllowAny'],
    'DEFAULT_SCHEMA_CLASS': 'drf_spectacular.openapi.AutoSchema',
    'UNAUTHENTICATED_USER': None,
}

SPECTACULAR_SETTINGS = {
    'TITLE': 'Yield Optimizer API',
    'DESCRIPTION': 'Yield opportunities, allocation strategies, portfolio analytics and gated rebalancing',
    'VERSION': VERSION,
    'SERVE_INCLUDE_SCHEMA': False,
}

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'standard': {
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'standard',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': os.environ.get('LOG_LEVEL', 'INFO'),
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': os.environ.get('DJANGO_LOG_LEVEL', 'WARNING'),
            'propagate': False,
        },
    },
}

# Blockchain
BLOCKCHAIN_RPC_URL = os.environ.get('BLOCKCHAIN_RPC_URL', '')

# Alerts
TELEGRAM_BOT_TOKEN = os.environ.get('TELEGRAM_BOT_TOKEN', '')
TELEGRAM_CHAT_IDS = [int(c) for c in env_list('TELEGRAM_CHAT_IDS')]


def default_sources():
    sources = []
    vaults = env_list('EULER_VAULT_ADDRESSES')
    if BLOCKCHAIN_RPC_URL and vaults:
        sources.append({'type': 'erc4626', 'name': 'euler-vaults', 'protocol': 'Euler Vaults', 'vaults': vaults})
    if os.environ.get('POOL_SUBGRAPH_URL'):
        sources.append({'type': 'subgraph', 'name': 'eulerswap', 'protocol': 'EulerSwap',
                        'url': os.environ['POOL_SUBGRAPH_URL']})
    sources.append({'type': 'yields_api', 'name': 'defillama',
                    'projects': env_list('YIELDS_API_PROJECTS', 'aave-v3,compound-v3,morpho-blue,euler-v2'),
                    'chain': os.environ.get('YIELDS_API_CHAIN', 'Ethereum')})
    return sources


YIELD_ENGINE = {
    'SOURCES': env_json('YIELD_ENGINE_SOURCES', default_sources()),
    'SOURCE_TIMEOUT_SECONDS': float(os.environ.get('SOURCE_TIMEOUT_SECONDS', '10')),
    'TARGET_APY': float(os.environ.get('TARGET_APY', '8.0')),
    'RISK_FREE_RATE': float(os.environ.get('RISK_FREE_RATE', '4.0')),
    'ALERT_COOLDOWN_MINUTES': int(os.environ.get('ALERT_COOLDOWN_MINUTES', '60')),
    'MONITORED_ACCOUNTS': env_json('MONITORED_ACCOUNTS', []),
    'EXECUTION_SIGNER': os.environ.get('EXECUTION_SIGNER') or None,
    'PRICE_ORACLE': env_json('PRICE_ORACLE', {'type': 'coingecko'}),
    'COINGECKO_API_KEY': os.environ.get('COINGECKO_API_KEY', ''),
}
