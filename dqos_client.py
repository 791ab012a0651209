import logging
from typing import Any, Dict, Optional

import httpx

from config import Config

logger = logging.getLogger(__name__)


class DQoSAPIError(Exception):
    """Raised for any failure talking to the DQoS API. Never retried."""

    def __init__(self, message: str):
        super().__init__(f"API Error: {message}")


class DQoSClient:
    """Read-only client for the DQoS data API"""

    def __init__(self, config: Config, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = config.dqos_api_url
        self.timeout = config.dqos_timeout
        self.client = httpx.AsyncClient(
            headers={
                "Accept": "application/json",
                "User-Agent": f"{config.mcp_server_name}/{config.mcp_server_version}"
            },
            timeout=config.dqos_timeout,
            transport=transport,
        )

    async def close(self):
        """Close the HTTP client"""
        await self.client.aclose()

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET <base>/<path>?<params> and return the decoded JSON body"""
        url = f"{self.base_url}/{path.lstrip('/')}"
        query = {key: value for key, value in (params or {}).items() if value is not None}

        try:
            response = await self.client.get(url, params=query)
            response.raise_for_status()
            return response.json()

        except httpx.HTTPStatusError as e:
            logger.error(f"DQoS API HTTP error: {e.response.status_code} - {e.response.text}")
            raise DQoSAPIError(f"Request failed with status code {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            logger.error(f"DQoS API timeout after {self.timeout}s: {url}")
            raise DQoSAPIError(f"timeout of {self.timeout:g}s exceeded") from e
        except httpx.HTTPError as e:
            logger.error(f"Network error: {e}")
            raise DQoSAPIError(str(e) or e.__class__.__name__) from e
        except ValueError as e:
            logger.error(f"DQoS API returned invalid JSON: {e}")
            raise DQoSAPIError("invalid JSON in response") from e
