"""Media casting to TVs via DLNA (UPnP AVTransport)."""

import asyncio
import logging
from enum import Enum
from typing import Any, Iterable, List, Optional
from xml.sax.saxutils import escape

from async_upnp_client.aiohttp import AiohttpRequester
from async_upnp_client.client_factory import UpnpFactory
from async_upnp_client.exceptions import UpnpError

logger = logging.getLogger(__name__)


class CastError(Exception):
    """A cast command was rejected or could not reach the renderer."""


class CastPlayState(Enum):
    """Play state as reported by the renderer, before normalisation."""
    UNKNOWN = "unknown"
    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"
    BUFFERING = "buffering"
    FINISHED = "finished"


TRANSPORT_STATES = {
    'PLAYING': CastPlayState.PLAYING,
    'TRANSITIONING': CastPlayState.BUFFERING,
    'PAUSED_PLAYBACK': CastPlayState.PAUSED,
    'STOPPED': CastPlayState.FINISHED,
    'NO_MEDIA_PRESENT': CastPlayState.IDLE,
}


class CastCapability:
    """Interface of a "play this URL on the TV" backend.

    Implementations raise ``CastError`` when a command fails.
    """

    async def play(self, url: str, mime_type: str, title: Optional[str] = None,
                   description: Optional[str] = None) -> None:
        raise NotImplementedError

    async def stop(self) -> None:
        raise NotImplementedError

    async def query_state(self) -> CastPlayState:
        raise NotImplementedError


def upnp_class(mime_type: str) -> str:
    if mime_type.startswith('image/'):
        return 'object.item.imageItem.photo'
    if mime_type.startswith('audio/'):
        return 'object.item.audioItem.musicTrack'
    return 'object.item.videoItem'


def build_didl(url: str, mime_type: str, title: Optional[str] = None,
               description: Optional[str] = None) -> str:
    """Build DIDL-Lite metadata for SetAVTransportURI."""
    description_xml = f"<dc:description>{escape(description)}</dc:description>" if description else ""
    return f'''<DIDL-Lite xmlns="urn:schemas-upnp-org:metadata-1-0/DIDL-Lite/"
                    xmlns:dc="http://purl.org/dc/elements/1.1/"
                    xmlns:upnp="urn:schemas-upnp-org:metadata-1-0/upnp/">
            <item id="0" parentID="-1" restricted="1">
                <dc:title>{escape(title or "")}</dc:title>{description_xml}
                <upnp:class>{upnp_class(mime_type)}</upnp:class>
                <res protocolInfo="http-get:*:{mime_type}:*">{escape(url)}</res>
            </item>
        </DIDL-Lite>'''


class DlnaRenderer(CastCapability):
    """CastCapability backed by a renderer's AVTransport service."""

    def __init__(self, av_transport: Any, name: Optional[str] = None,
                 location: Optional[str] = None) -> None:
        self.av_transport = av_transport
        self.name = name
        self.location = location

    async def _call(self, action_name: str, **kwargs: Any) -> dict:
        try:
            action = self.av_transport.action(action_name)
            return await action.async_call(InstanceID=0, **kwargs)
        except (UpnpError, asyncio.TimeoutError) as e:
            raise CastError(f"{action_name} failed: {e}") from e

    async def play(self, url: str, mime_type: str, title: Optional[str] = None,
                   description: Optional[str] = None) -> None:
        didl = build_didl(url, mime_type, title, description)

        try:
            await self._call('Stop')
        except CastError:
            pass  # nothing was playing

        logger.debug("Loading %s (%s)", url, mime_type)
        await self._call('SetAVTransportURI', CurrentURI=url, CurrentURIMetaData=didl)
        await asyncio.sleep(0.5)
        await self._call('Play', Speed='1')

    async def stop(self) -> None:
        await self._call('Stop')

    async def query_state(self) -> CastPlayState:
        info = await self._call('GetTransportInfo')
        state = info.get('CurrentTransportState', '')
        return TRANSPORT_STATES.get(state, CastPlayState.UNKNOWN)


def candidate_locations(ip: str, location: Optional[str] = None,
                        port: Optional[int] = None) -> List[str]:
    """Description URLs to try for a renderer, most likely first."""
    locations = []
    if location:
        locations.append(location)
    endpoints = [
        f'http://{ip}:{port}/' if port else None,
        f'http://{ip}:1337/',
        f'http://{ip}:9197/dmr',
        f'http://{ip}:7676/dmr',
    ]
    for endpoint in endpoints:
        if endpoint and endpoint not in locations:
            locations.append(endpoint)
    return locations


async def connect_renderer(locations: Iterable[str], timeout: float = 10.0) -> Optional[DlnaRenderer]:
    """Connect to the first description URL that exposes AVTransport."""
    factory = UpnpFactory(AiohttpRequester())

    last_error = None
    for location in locations:
        try:
            device = await asyncio.wait_for(factory.async_create_device(location), timeout=timeout)
        except asyncio.TimeoutError:
            last_error = f"Connection timed out ({location})"
            continue
        except (UpnpError, OSError, ValueError) as e:
            last_error = str(e)
            continue

        for service in device.services.values():
            if 'AVTransport' in service.service_type:
                logger.info("Connected to renderer %s at %s", device.friendly_name, location)
                return DlnaRenderer(service, device.friendly_name, location)

    logger.warning("Could not connect to a DLNA renderer: %s", last_error)
    return None
