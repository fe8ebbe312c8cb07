"""
Vault secret loading for the edge entry point
"""

import json
import logging
import os
import tempfile
from typing import Dict, List, Optional

from baas_proxy.config import UPSTREAM_KEY_VARS

logger = logging.getLogger(__name__)


def _mask(key: str, value: str) -> str:
    if key in UPSTREAM_KEY_VARS or len(value) <= 3:
        return "***"
    return value[:3] + "***"


def _candidate_paths(path: Optional[str]) -> List[str]:
    if path:
        return [path]

    configured = os.environ.get("VAULT_SECRET_FILE")
    if configured:
        return [configured]

    temp_dir = tempfile.gettempdir()
    candidates = [
        os.path.join(temp_dir, name)
        for name in ("vault_secrets", "vault_response", "secrets")
    ]
    candidates.append("/opt/vault_secrets")  # Lambda layer path
    return candidates


def parse_secrets(content: str) -> Dict[str, str]:
    """
    Parse a Vault agent secrets dump.

    Accepts a flat JSON object, Vault KV v2 nesting (``{"x": {"data": {...}}}``),
    or plain ``KEY=VALUE`` lines when the content is not JSON.
    """
    secrets: Dict[str, str] = {}
    try:
        data = json.loads(content)
    except json.JSONDecodeError:
        logger.warning("Secrets file is not JSON, reading KEY=VALUE lines")
        for line in content.strip().splitlines():
            if "=" in line:
                key, value = line.split("=", 1)
                secrets[key.strip()] = value.strip()
        return secrets

    if not isinstance(data, dict):
        logger.error("Secrets JSON must be an object")
        return secrets

    for key, value in data.items():
        if isinstance(value, (str, int, float, bool)):
            secrets[str(key)] = str(value)
        elif isinstance(value, dict) and isinstance(value.get("data"), dict):
            for nested_key, nested_value in value["data"].items():
                secrets[str(nested_key)] = str(nested_value)
    return secrets


def load_vault_secrets(path: Optional[str] = None) -> bool:
    """Export secrets from a Vault extension file into the environment"""
    secret_file = None
    for candidate in _candidate_paths(path):
        if os.path.exists(candidate):
            secret_file = candidate
            break

    if secret_file is None:
        logger.info("No Vault secrets file found, using the process environment")
        return False

    logger.info(f"Loading Vault secrets from: {secret_file}")
    try:
        with open(secret_file, "r") as f:
            secrets = parse_secrets(f.read())
    except OSError as e:
        logger.error(f"Error reading Vault secrets file: {e}")
        return False
    finally:
        # The file holds plaintext credentials
        try:
            os.remove(secret_file)
            logger.info(f"Removed secrets file {secret_file}")
        except OSError as cleanup_error:
            logger.warning(f"Could not remove secrets file: {cleanup_error}")

    for key, value in secrets.items():
        os.environ[key] = value
        logger.info(f"Set environment variable: {key} = {_mask(key, value)}")

    return bool(secrets)
