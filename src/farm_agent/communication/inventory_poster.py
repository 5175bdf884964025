"""
Inventory posting for Farm Agent.
Sends a collected hardware inventory to the central server's REST API.
"""

import asyncio
import json
import logging
import ssl
from typing import Any, Dict, Optional

import aiohttp

from src.i18n import _

INVENTORY_PATH = "/api/v1/servers/inventory"
DEFAULT_SERVER_URL = "http://localhost:6183"

logger = logging.getLogger(__name__)


class InventoryPostError(Exception):
    """The server rejected the inventory or could not be reached."""

    def __init__(self, message: str, status: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body


def inventory_url(base_url: str) -> str:
    """Inventory endpoint under a server base URL."""
    return base_url.rstrip("/") + INVENTORY_PATH


def _ssl_context(verify_ssl: bool) -> ssl.SSLContext:
    ssl_context = ssl.create_default_context()
    if not verify_ssl:
        ssl_context.check_hostname = False
        ssl_context.verify_mode = ssl.CERT_NONE
    return ssl_context


async def post_inventory(
    inventory: Any,
    base_url: str = DEFAULT_SERVER_URL,
    verify_ssl: bool = True,
    timeout: float = 30.0,
) -> Dict[str, Any]:
    """
    POST an inventory as JSON and return the decoded response.

    Args:
        inventory: Inventory record (or an already plain dict)
        base_url: Server base URL, e.g. http://localhost:6183
        verify_ssl: Verify the server certificate for https URLs
        timeout: Total request timeout in seconds

    Raises:
        InventoryPostError: non-2xx response or connection failure
    """
    url = inventory_url(base_url)
    payload = inventory.to_dict() if hasattr(inventory, "to_dict") else inventory
    logger.info("Posting inventory to %s", url)

    connector = aiohttp.TCPConnector(ssl=_ssl_context(verify_ssl))
    client_timeout = aiohttp.ClientTimeout(total=timeout)
    try:
        async with aiohttp.ClientSession(
            connector=connector, timeout=client_timeout
        ) as session:
            async with session.post(
                url,
                json=payload,
                headers={"Content-Type": "application/json"},
            ) as response:
                if 200 <= response.status < 300:
                    body = await response.text()
                    try:
                        response_data = json.loads(body) if body.strip() else {}
                    except ValueError:
                        logger.debug("Server response is not JSON: %s", body)
                        return {"response": body}
                    logger.debug("Server accepted inventory: %s", response_data)
                    return response_data if isinstance(response_data, dict) else {
                        "response": response_data
                    }
                error_text = await response.text()
                logger.error(
                    "Inventory post failed with status %s: %s",
                    response.status,
                    error_text,
                )
                raise InventoryPostError(
                    _("Server returned HTTP %s: %s") % (response.status, error_text),
                    status=response.status,
                    body=error_text,
                )
    except (aiohttp.ClientError, asyncio.TimeoutError) as error:
        raise InventoryPostError(
            _("Cannot reach inventory server at %s: %s") % (url, error)
        ) from error
