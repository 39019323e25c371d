import httpx
import logging
from typing import Optional
from sessionguard.utils.config import Config

logger = logging.getLogger(__name__)

UNKNOWN_LOCATION = "Unknown Location"


class GeolocationService:
    """Best-effort IP to "City, Region, Country" lookup"""

    def __init__(
        self,
        url_template: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url_template = url_template or Config.GEOLOCATION_URL
        self.timeout = timeout if timeout is not None else Config.GEOLOCATION_TIMEOUT
        self.transport = transport

    async def locate(self, ip_address: str) -> str:
        """Never raises; any failure degrades to UNKNOWN_LOCATION"""
        if not ip_address or ip_address == "Unknown IP":
            return UNKNOWN_LOCATION

        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
                response = await client.get(self.url_template.format(ip=ip_address))
                data = response.json()
        except Exception as e:
            logger.warning(f"Error fetching location for {ip_address}: {e}")
            return UNKNOWN_LOCATION

        if not isinstance(data, dict) or data.get("status") != "success":
            return UNKNOWN_LOCATION

        return f"{data.get('city')}, {data.get('regionName')}, {data.get('country')}"
