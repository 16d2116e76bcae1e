"""
AWS Secrets Manager bootstrap for the yield optimizer backend.

The secret is a JSON object of environment variable names to values; settings
loads it into ``os.environ`` before reading any configuration.
"""
import json
import logging
import os
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

_secrets_cache: Dict[str, Dict[str, Any]] = {}


def get_secret(secret_name: str, region_name: str = "us-east-1") -> Optional[Dict[str, Any]]:
    """
    Retrieve a JSON secret from AWS Secrets Manager.

    Returns None when the secret is binary, or when it cannot be read while
    running locally; outside development a ClientError is re-raised.
    """
    if secret_name in _secrets_cache:
        return _secrets_cache[secret_name]

    session = boto3.session.Session()
    client = session.client(service_name='secretsmanager', region_name=region_name)

    try:
        response = client.get_secret_value(SecretId=secret_name)
    except ClientError as e:
        logger.error(f"Failed to retrieve secret {secret_name}: {str(e)}")
        setup_mode = os.environ.get('SETUP', 'local').lower()
        if setup_mode == 'local' or os.environ.get('ENVIRONMENT') == 'development':
            logger.warning(f"Falling back to environment variables in {setup_mode} mode")
            return None
        raise

    if 'SecretString' not in response:
        logger.error(f"Secret {secret_name} is binary and not supported")
        return None

    secret_dict = json.loads(response['SecretString'])
    _secrets_cache[secret_name] = secret_dict
    return secret_dict


def load_secrets_to_env(secret_name: str, region_name: str = "us-east-1") -> bool:
    """Copy the secret's key/value pairs into the process environment."""
    secrets = get_secret(secret_name, region_name)
    if not secrets:
        logger.warning(f"No secrets found for {secret_name}")
        return False

    loaded = 0
    for key, value in secrets.items():
        if value is not None:
            os.environ[key] = str(value)
            loaded += 1

    logger.info(f"Loaded {loaded} settings from AWS Secrets Manager secret {secret_name}")
    return True
