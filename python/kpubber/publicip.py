import ipaddress
import logging
from typing import Sequence

import httpx

from .errorhandling import PublicIPError
from .models import IPAddress

logger = logging.getLogger("kpubber")

DEFAULT_MIRRORS = (
    "https://api.ipify.org",
    "http://checkip.amazonaws.com",
)


class PublicIPResolver:
    """Asks a list of "what is my ip" endpoints, first valid answer wins."""

    def __init__(
        self, http_client: httpx.AsyncClient, mirrors: Sequence[str] = DEFAULT_MIRRORS
    ):
        if not mirrors:
            raise ValueError("at least one mirror is required")
        self.http_client = http_client
        self.mirrors = tuple(mirrors)

    async def resolve(self) -> IPAddress:
        errors = []
        for mirror in self.mirrors:
            try:
                ip = await self._ask(mirror)
            except (httpx.HTTPError, ValueError) as ex:
                logger.debug(f"Mirror {mirror} failed: {ex}")
                errors.append(f"{mirror}: {ex}")
                continue
            logger.debug(f"Mirror {mirror} answered {ip}")
            return ip

        raise PublicIPError("cannot obtain public ip from any mirror", errors)

    async def _ask(self, mirror: str) -> IPAddress:
        response = await self.http_client.get(mirror)
        response.raise_for_status()
        text = response.text.strip()
        # Rejects captive portal pages and other junk
        ipaddress.ip_address(text)
        return IPAddress(text)
