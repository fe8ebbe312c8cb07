"""
Lambda entry point with Vault secret loading
"""

import logging
import os
from typing import Any, Dict

from baas_proxy.config import load_config
from baas_proxy.edge import handle_event
from baas_proxy.vault import load_vault_secrets

logger = logging.getLogger()
logger.setLevel(os.environ.get("LOG_LEVEL", "INFO").upper())

# Load secrets and configuration during initialization
load_vault_secrets()
CONFIG = load_config()


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """Main Lambda handler"""
    return handle_event(event, context, CONFIG)
