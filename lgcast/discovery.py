"""Device discovery via DLNA (SSDP) and Netcast port probing."""

import asyncio
import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from async_upnp_client.aiohttp import AiohttpRequester
from async_upnp_client.client_factory import UpnpFactory
from async_upnp_client.exceptions import UpnpError
from async_upnp_client.search import async_search

from .config import NETCAST_PORT
from .utils import check_port

logger = logging.getLogger(__name__)

MEDIA_RENDERER = 'urn:schemas-upnp-org:device:MediaRenderer:1'


@dataclass
class DeviceEndpoint:
    """A TV on the local network and what it can do."""
    ip: str
    name: str = ""
    location: Optional[str] = None
    port: Optional[int] = None
    has_legacy_remote: bool = False
    has_cast_service: bool = False

    def __post_init__(self) -> None:
        if not self.name:
            self.name = f"TV ({self.ip})"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeviceEndpoint":
        fields = {k: data.get(k) for k in ('ip', 'name', 'location', 'port')}
        return cls(
            has_legacy_remote=bool(data.get('has_legacy_remote')),
            has_cast_service=bool(data.get('has_cast_service', data.get('castable'))),
            **fields,
        )


async def has_netcast_api(ip: str, port: int = NETCAST_PORT, timeout: float = 1.0) -> bool:
    """Check whether the Netcast remote API port is open."""
    return await asyncio.to_thread(check_port, ip, port, timeout)


async def endpoint_from_ip(ip: str, name: str = "") -> DeviceEndpoint:
    """Build an endpoint for a manually entered IP, probing for the Netcast API."""
    endpoint = DeviceEndpoint(ip=ip, name=name)
    endpoint.has_legacy_remote = await has_netcast_api(ip)
    return endpoint


async def discover_devices(timeout: int = 5) -> List[DeviceEndpoint]:
    """Discover media renderers on the network and probe them for Netcast."""
    devices: List[DeviceEndpoint] = []
    seen = set()
    factory = UpnpFactory(AiohttpRequester())

    async def on_response(response):
        location = response.get('location', '')
        if not location or location in seen:
            return
        seen.add(location)

        parsed = urlparse(location)
        ip = parsed.hostname
        if not ip:
            return

        try:
            device = await factory.async_create_device(location)
        except (UpnpError, asyncio.TimeoutError, OSError, ValueError) as e:
            logger.debug("Could not read description %s: %s", location, e)
            return

        has_av = any('AVTransport' in str(s.service_type) for s in device.services.values())
        devices.append(DeviceEndpoint(
            ip=ip,
            name=device.friendly_name or f"Unknown ({ip})",
            location=location,
            port=parsed.port or 80,
            has_cast_service=has_av,
        ))
        logger.info("Found %s (%s)", device.friendly_name, ip)

    try:
        await async_search(
            search_target=MEDIA_RENDERER,
            timeout=timeout,
            async_callback=on_response,
        )
    except OSError as e:
        logger.warning("SSDP search failed: %s", e)

    probes = await asyncio.gather(*(has_netcast_api(d.ip) for d in devices))
    for device, has_netcast in zip(devices, probes):
        device.has_legacy_remote = has_netcast

    return devices
