"""DIAL-style app launching with a Netcast AppExecute fallback."""

import asyncio
import logging
import xml.etree.ElementTree as ET
from typing import Dict, Mapping, Optional, Sequence, Tuple
from urllib.parse import urljoin

import aiohttp

from .config import (
    DIAL_PORTS, DIAL_DEFAULT_PORT, DIAL_PROBE_TIMEOUT, DIAL_TIMEOUT, DIAL_TARGET_APP,
    NETCAST_PORT, NETCAST_APP_TIMEOUT,
)
from .netcast import CONTENT_TYPE, build_xml, find_text

logger = logging.getLogger(__name__)

BROWSER_APP_IDS = ("browser", "netcast.browser", "lge.browser")
YOUTUBE_APP_IDS = ("youtube.leanback.v4", "youtube", "leanback.youtube")

# Netcast app ids for apps whose id differs from their display name
NETCAST_APP_IDS = {
    "netflix": "netflix",
    "prime video": "amazon",
}


def parse_app_state(xml_text: str) -> Optional[str]:
    return find_text(xml_text, 'state')


def parse_run_link(xml_text: str) -> Optional[str]:
    """Return the href of the ``<link rel="run">`` element of a DIAL app description."""
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        logger.warning("Could not parse DIAL app description: %s", e)
        return None
    for element in root.iter():
        tag = element.tag.rsplit('}', 1)[-1] if isinstance(element.tag, str) else ''
        if tag == 'link' and element.get('rel') == 'run' and element.get('href'):
            return element.get('href')
    return None


def netcast_app_id(app_name: str) -> str:
    return NETCAST_APP_IDS.get(app_name.strip().lower(), app_name.lower().replace(" ", ""))


class DialLauncher:
    """Finds the TV's working DIAL port and launches/stops apps on it.

    Every step is tried once with its own timeout; failures cascade from DIAL
    to the Netcast ``AppExecute`` command and then to an explicit ``False``.
    """

    def __init__(
        self,
        device_ip: str,
        *,
        target_app: str = DIAL_TARGET_APP,
        ports: Sequence[int] = DIAL_PORTS,
        netcast_port: int = NETCAST_PORT,
        probe_timeout: float = DIAL_PROBE_TIMEOUT,
        timeout: float = DIAL_TIMEOUT,
    ) -> None:
        self.device_ip = device_ip
        self.target_app = target_app
        self.ports = tuple(ports)
        self.netcast_port = netcast_port
        self.probe_timeout = probe_timeout
        self.timeout = timeout

        self.working_port: Optional[int] = None
        self.is_target_app_running = False
        self.app_instance_url: Optional[str] = None
        self._http: Optional[aiohttp.ClientSession] = None

    def app_url(self, app_name: str, port: Optional[int] = None) -> str:
        port = port or self.working_port or DIAL_DEFAULT_PORT
        return f"http://{self.device_ip}:{port}/apps/{app_name}"

    @property
    def default_run_url(self) -> str:
        return f"{self.app_url(self.target_app)}/run"

    # === DISCOVERY ===

    async def discover_app(self, probe_app_name: Optional[str] = None) -> bool:
        """Probe the candidate ports in order; fall back to Netcast if none answer."""
        app_name = probe_app_name or self.target_app

        for port in self.ports:
            url = self.app_url(app_name, port)
            logger.debug("Trying DIAL port %s", port)
            try:
                status, text, _ = await self._request('GET', url, timeout=self.probe_timeout)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.debug("Port %s failed: %r", port, e)
                continue

            logger.debug("Port %s response code: %s", port, status)
            if status != 200:
                continue

            self.working_port = port
            run_link = parse_run_link(text)
            if run_link:
                self.app_instance_url = urljoin(url + "/", run_link)
            self.is_target_app_running = parse_app_state(text) == "running"
            logger.info("DIAL %s found on port %s (running=%s)",
                        app_name, port, self.is_target_app_running)
            return True

        logger.warning("No working DIAL port found on %s, trying Netcast", self.device_ip)
        return await self._netcast_target_launch()

    # === LAUNCH ===

    async def launch_app(self, app_name: str) -> bool:
        """Launch an app by name, via DIAL when a port is known, else via Netcast."""
        if app_name.strip().lower() == self.target_app.lower():
            return await self.launch_target_app()

        if self.working_port is not None:
            dial_name = app_name.replace(" ", "")
            url = self.app_url(dial_name)
            try:
                status, _, _ = await self._request('POST', url)
                logger.debug("Launch '%s' via DIAL response code: %s", dial_name, status)
                if status in (200, 201):
                    return True
                logger.warning("DIAL launch for '%s' failed, trying Netcast", dial_name)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.warning("Error launching '%s' via DIAL, trying Netcast: %r", app_name, e)

        app_id = netcast_app_id(app_name)
        logger.debug("Trying Netcast launch for '%s' with appId '%s'", app_name, app_id)
        if await self._netcast_app_execute(app_id):
            return True
        logger.error("Failed to launch '%s'", app_name)
        return False

    async def launch_target_app(self, content_id: Optional[str] = None) -> bool:
        """Launch the target app, optionally deep-linked to ``content_id``."""
        if self.working_port is None:
            return await self._netcast_target_launch()

        url = self.app_url(self.target_app)
        data = f"v={content_id}".encode('utf-8') if content_id else None
        try:
            status, _, headers = await self._request(
                'POST', url, data=data, headers={'Content-Type': 'text/plain'})
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("Error launching %s via DIAL, trying Netcast: %r", self.target_app, e)
            return await self._netcast_target_launch()

        logger.debug("Launch %s response code: %s", self.target_app, status)
        if status not in (200, 201):
            logger.warning("Failed to launch %s via DIAL, trying Netcast", self.target_app)
            return await self._netcast_target_launch()

        location = headers.get('Location')
        if location:
            self.app_instance_url = location
            logger.debug("%s instance URL: %s", self.target_app, location)
        self.is_target_app_running = True
        return True

    async def push_content(self, content_id: str) -> bool:
        """Play ``content_id`` in the target app, launching it first if needed."""
        if not self.is_target_app_running:
            return await self.launch_target_app(content_id)

        url = self.app_instance_url or self.default_run_url
        try:
            status, _, _ = await self._request(
                'POST', url, data=f"v={content_id}".encode('utf-8'),
                headers={'Content-Type': 'text/plain'})
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("Error pushing %s to %s: %r", content_id, url, e)
            return False
        logger.debug("Push content response code: %s", status)
        return status in (200, 201)

    async def stop_target_app(self) -> bool:
        url = self.app_instance_url or self.default_run_url
        try:
            status, _, _ = await self._request('DELETE', url)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            # Unreachable instance: the app is gone either way
            logger.warning("Error stopping %s, assuming stopped: %r", self.target_app, e)
            self.is_target_app_running = False
            return True

        logger.debug("Stop %s response code: %s", self.target_app, status)
        if status in (200, 204):
            self.is_target_app_running = False
            self.app_instance_url = None
            return True
        logger.error("Failed to stop %s (status=%s)", self.target_app, status)
        return False

    async def query_target_app_status(self) -> Tuple[bool, bool]:
        """Return (reachable, running) for the target app."""
        url = self.app_url(self.target_app)
        try:
            status, text, _ = await self._request('GET', url)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("Error checking %s status: %r", self.target_app, e)
            return False, False

        if status != 200:
            return False, False
        state = parse_app_state(text)
        self.is_target_app_running = state == "running"
        logger.debug("%s status: %s", self.target_app, state)
        return True, self.is_target_app_running

    # === NETCAST FALLBACK ===

    async def launch_browser(self) -> bool:
        """Open the TV's web browser, the only YouTube route on most Netcast sets."""
        for browser_id in BROWSER_APP_IDS:
            if await self._netcast_app_execute(browser_id):
                logger.info("Launched browser via Netcast (%s)", browser_id)
                return True
        logger.error("Failed to launch browser with all formats")
        return False

    async def _netcast_target_launch(self) -> bool:
        if await self.launch_browser():
            return True

        for app_id in YOUTUBE_APP_IDS:
            logger.debug("Trying Netcast %s launch with appId %s", self.target_app, app_id)
            if await self._netcast_app_execute(app_id):
                self.working_port = self.netcast_port
                return True

        logger.error("Failed to launch %s via Netcast", self.target_app)
        return False

    async def _netcast_app_execute(self, app_id: str) -> bool:
        # Firmware variants disagree on <name> vs <type> for the command name
        for name_tag in ('name', 'type'):
            body = build_xml('command', (name_tag, 'AppExecute'), ('auid', app_id))
            if await self._netcast_post(body):
                return True
        return False

    async def _netcast_post(self, body: str) -> bool:
        url = f"http://{self.device_ip}:{self.netcast_port}/roap/api/command"
        try:
            status, text, _ = await self._request(
                'POST', url, data=body.encode('utf-8'),
                headers={'Content-Type': CONTENT_TYPE}, timeout=NETCAST_APP_TIMEOUT)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.debug("Netcast request to %s failed: %r", url, e)
            return False
        logger.debug("Netcast request returned %s: %s", status, text)
        return status == 200 and "200" in (text or "")

    # === HTTP ===

    async def _request(self, method: str, url: str, *, data: Optional[bytes] = None,
                       headers: Optional[Dict[str, str]] = None,
                       timeout: Optional[float] = None) -> Tuple[int, str, Mapping[str, str]]:
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession()
        async with self._http.request(
                method, url, data=data, headers=headers, allow_redirects=False,
                timeout=aiohttp.ClientTimeout(total=timeout or self.timeout)) as response:
            text = await response.text(errors='replace')
            return response.status, text, response.headers.copy()

    async def close(self) -> None:
        if self._http is not None:
            await self._http.close()
            self._http = None
