# x402_bazaar/services/marketplace_api.py
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlencode

import requests
from requests.exceptions import RequestException

from x402_bazaar.core.config import settings
from x402_bazaar.models.service import ServiceInfo

logger = logging.getLogger(__name__)


def _base_url(server_url: Optional[str] = None) -> str:
    return (server_url or settings.server_url).rstrip("/")


def parse_params(raw_params: Iterable[str]) -> Tuple[Dict[str, str], List[str]]:
    """
    Parses `key=value` strings from the command line.

    Splits on the first `=` so values may contain `=`, and strips one pair of
    matching single or double quotes around the value.

    Args:
        raw_params: Strings as given to --param.

    Returns:
        A tuple (params, invalid) where invalid holds the entries that had no
        `=` or an empty key.
    """
    params: Dict[str, str] = {}
    invalid: List[str] = []

    for raw in raw_params or []:
        key, sep, value = raw.partition("=")
        key = key.strip()
        if not sep or not key:
            logger.warning(f"Invalid param format: {raw} (expected key=value)")
            invalid.append(raw)
            continue

        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]
        params[key] = value

    return params, invalid


def normalize_endpoint(endpoint: str) -> str:
    """Adds a leading slash when missing."""
    endpoint = endpoint.strip()
    return endpoint if endpoint.startswith("/") else f"/{endpoint}"


def build_call_url(server_url: Optional[str], endpoint: str, params: Optional[Dict[str, str]] = None) -> str:
    """Builds the full URL of a marketplace endpoint on the server."""
    url = f"{_base_url(server_url)}{normalize_endpoint(endpoint)}"
    if params:
        separator = "&" if "?" in url else "?"
        url = f"{url}{separator}{urlencode(params)}"
    return url


def _get_json(url: str, params: Optional[Dict[str, str]] = None, timeout: Optional[float] = None) -> Any:
    try:
        response = requests.get(url, params=params, timeout=timeout or settings.QUERY_TIMEOUT_SECONDS)
        response.raise_for_status()
        return response.json()
    except RequestException as e:
        logger.error(f"Error fetching {url}: {e}")
        raise


def _extract_services(data: Any) -> List[ServiceInfo]:
    # The API returns either {"services": [...]} or a bare list
    if isinstance(data, dict):
        records = data.get("services")
    else:
        records = data

    if not isinstance(records, list):
        logger.warning(f"Unexpected services payload from marketplace: {type(data)}")
        return []

    services = []
    for record in records:
        if not isinstance(record, dict):
            logger.debug(f"Skipping non-object service record: {record!r}")
            continue
        services.append(ServiceInfo.from_api(record))
    return services


def list_services(
    chain: Optional[str] = None,
    category: Optional[str] = None,
    free: bool = False,
    server_url: Optional[str] = None,
) -> List[ServiceInfo]:
    """
    Fetches marketplace services, optionally filtered.

    Args:
        chain: Only services on this chain (e.g. base, skale).
        category: Only services in this category.
        free: Only free services.
        server_url: Marketplace URL (settings.X402_SERVER_URL by default).

    Returns:
        A list of ServiceInfo.

    Raises:
        RequestException: If the HTTP request fails.
    """
    params: Dict[str, str] = {}
    if chain:
        params["chain"] = chain
    if category:
        params["category"] = category
    if free:
        params["free"] = "true"

    data = _get_json(f"{_base_url(server_url)}/api/services", params=params or None)
    return _extract_services(data)


def search_services(query: str, server_url: Optional[str] = None) -> List[ServiceInfo]:
    """
    Full-text search over marketplace services.

    Raises:
        ValueError: If the query is empty.
        RequestException: If the HTTP request fails.
    """
    if not query or not query.strip():
        raise ValueError("Search query is required")
    data = _get_json(f"{_base_url(server_url)}/api/services", params={"search": query.strip()})
    return _extract_services(data)


def get_health(server_url: Optional[str] = None) -> Dict[str, Any]:
    """GET /health with the short health timeout."""
    return _get_json(f"{_base_url(server_url)}/health", timeout=settings.HEALTH_TIMEOUT_SECONDS)


def get_marketplace_info(server_url: Optional[str] = None) -> Dict[str, Any]:
    """GET / (name, total_services, ...)."""
    return _get_json(f"{_base_url(server_url)}/")


def get_stats(server_url: Optional[str] = None) -> Dict[str, Any]:
    """GET /api/stats (totalServices, totalPayments, totalRevenue, ...)."""
    return _get_json(f"{_base_url(server_url)}/api/stats")
