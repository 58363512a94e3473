# x402_bazaar/services/status.py
"""
Marketplace status checks.

Checks, in order:
- /health: the server is reachable (failure is an error)
- /: marketplace name and service count (failure is a warning)
- /api/stats: payment and revenue totals (failure is a warning)
"""
import logging
from typing import Any, Dict, Optional

from requests.exceptions import RequestException

from x402_bazaar.services.marketplace_api import get_health, get_marketplace_info, get_stats

logger = logging.getLogger(__name__)


def check_marketplace_status(server_url: Optional[str] = None) -> Dict[str, Any]:
    """
    Run all status checks against a marketplace server.

    Args:
        server_url: Marketplace URL (settings.X402_SERVER_URL by default)

    Returns:
        Dict containing:
        - online: bool - whether /health answered
        - network: str or None - network reported by /health
        - name: str or None - marketplace name
        - total_services: int or None - number of listed services
        - stats: dict or None - /api/stats payload
        - warnings: list of str - non-fatal problems
        - errors: list of str - fatal problems
    """
    result: Dict[str, Any] = {
        "online": False,
        "network": None,
        "name": None,
        "total_services": None,
        "stats": None,
        "warnings": [],
        "errors": [],
    }

    try:
        health = get_health(server_url)
    except (RequestException, ValueError) as e:
        logger.error(f"Health check failed: {e}")
        result["errors"].append(f"Cannot reach /health: {e}")
        return result

    result["online"] = True
    if isinstance(health, dict):
        result["network"] = health.get("network")

    try:
        info = get_marketplace_info(server_url)
        if isinstance(info, dict):
            result["name"] = info.get("name")
            result["total_services"] = info.get("total_services")
    except (RequestException, ValueError) as e:
        logger.warning(f"Marketplace info unavailable: {e}")
        result["warnings"].append(f"Cannot fetch marketplace info: {e}")

    try:
        stats = get_stats(server_url)
        result["stats"] = stats if isinstance(stats, dict) else None
    except (RequestException, ValueError) as e:
        logger.warning(f"Marketplace stats unavailable: {e}")
        result["warnings"].append(f"Cannot fetch stats: {e}")

    return result
