"""
Seed environment variables from AWS Secrets Manager before settings are loaded.
Import this module first in manage.py and asgi.py so os.environ is populated
before pose_relay.settings and applib.config are evaluated.

Only runs when RELAY_SECRET_NAME is set (e.g. "pose-relay/prod"); local runs
need no AWS access. Keys already present in the environment (e.g. from the
container definition) are left alone, so they override secret values.
"""
import json
import logging
import os

import boto3

logger = logging.getLogger(__name__)


def load_secrets_from_aws(secret_name: str, region: str | None = None) -> int:
    """Copy the secret's JSON keys into os.environ; returns how many were set."""
    region = region or os.environ.get("AWS_REGION", "us-east-2")
    client = boto3.client("secretsmanager", region_name=region)
    response = client.get_secret_value(SecretId=secret_name)
    secret_str = response.get("SecretString")
    if not secret_str:
        raise RuntimeError(f"Secret {secret_name!r} has no SecretString")
    data = json.loads(secret_str)
    applied = 0
    for key, value in data.items():
        if value is not None and key not in os.environ:
            os.environ[key] = str(value)
            applied += 1
    return applied


_secret_name = os.environ.get("RELAY_SECRET_NAME", "").strip()
if _secret_name:
    _count = load_secrets_from_aws(_secret_name)
    logger.info("Loaded %d settings from secret %s", _count, _secret_name)
