"""Per-device connection state: remote control, app launcher, cast session."""

import logging
from typing import Optional

from .autoplay import Autoplayer
from .config import MERGE_CACHE_DIR, HTTP_PORT, Settings, SessionStore
from .conversion import StreamMerger
from .dial import DialLauncher
from .discovery import DeviceEndpoint
from .dlna import candidate_locations, connect_renderer
from .netcast import NetcastClient
from .server import MediaServer
from .session import MediaSession
from .youtube import YouTubeResolver

logger = logging.getLogger(__name__)


class DeviceContext:
    """Everything needed to talk to one TV.

    Built once per connection and closed when done. The Netcast client starts
    with any session id stored for the device and writes new or invalidated
    sessions back through a SessionStore.
    """

    def __init__(self, endpoint: DeviceEndpoint, settings: Settings, *,
                 http_port: int = HTTP_PORT, cache_dir: str = MERGE_CACHE_DIR) -> None:
        self.endpoint = endpoint
        self.settings = settings
        self.sessions = SessionStore(settings, endpoint.ip)

        self.remote = NetcastClient(endpoint.ip, self.sessions.get(), listener=self.sessions)
        self.launcher = DialLauncher(endpoint.ip)
        self.server = MediaServer(port=http_port)
        self.resolver = YouTubeResolver()
        self.merger = StreamMerger(cache_dir)

        self.session: Optional[MediaSession] = None
        self.autoplayer: Optional[Autoplayer] = None

    @property
    def is_paired(self) -> bool:
        return self.remote.is_paired

    async def connect_cast(self) -> bool:
        """Find the TV's media renderer and set up a cast session on it."""
        if self.session is not None:
            return True

        locations = candidate_locations(self.endpoint.ip, self.endpoint.location, self.endpoint.port)
        renderer = await connect_renderer(locations)
        if renderer is None:
            return False

        self.session = MediaSession(renderer)
        self.autoplayer = Autoplayer(
            self.session,
            resolver=self.resolver,
            publisher=self.server,
            merger=self.merger,
        )
        return True

    async def close(self) -> None:
        if self.autoplayer is not None:
            await self.autoplayer.stop_all()
        if self.session is not None:
            await self.session.close()
        await self.remote.close()
        await self.launcher.close()
        self.server.stop()
        logger.debug("Closed context for %s", self.endpoint.ip)
