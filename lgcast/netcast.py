"""Netcast legacy remote protocol: PIN pairing, key and cursor commands."""

import asyncio
import logging
import xml.etree.ElementTree as ET
from typing import Any, List, Optional, Set, Tuple

import aiohttp

from .config import NETCAST_PORT, NETCAST_TIMEOUT
from .keys import WHEEL_UP, WHEEL_DOWN

logger = logging.getLogger(__name__)

XML_DECLARATION = '<?xml version="1.0" encoding="utf-8"?>'
CONTENT_TYPE = 'application/atom+xml'

HTTP_OK = 200
HTTP_UNAUTHORIZED = 401


def build_xml(root: str, *fields: Tuple[str, Any]) -> str:
    """Build a Netcast request document such as <command><type>..</type></command>."""
    element = ET.Element(root)
    for tag, value in fields:
        child = ET.SubElement(element, tag)
        if value is not None:
            child.text = str(value)
    return XML_DECLARATION + ET.tostring(element, encoding='unicode')


def find_text(xml_text: str, tag: str) -> Optional[str]:
    """Return the text of the first element named ``tag``, ignoring namespaces."""
    values = find_all_text(xml_text, tag)
    return values[0] if values else None


def find_all_text(xml_text: str, tag: str) -> List[str]:
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        logger.warning("Could not parse XML response: %s", e)
        return []
    values = []
    for element in root.iter():
        name = element.tag.rsplit('}', 1)[-1] if isinstance(element.tag, str) else ''
        if name == tag and element.text and element.text.strip():
            values.append(element.text.strip())
    return values


def parse_session_id(xml_text: str) -> Optional[str]:
    return find_text(xml_text, 'session')


class NetcastClient:
    """Client for the ``/roap/api`` endpoints of Netcast-era LG TVs.

    Every command is an independent request with a short timeout. Failures are
    reported as ``False``; a 401 on a session-scoped command clears the session
    and notifies ``listener.on_session_invalid()``.
    """

    def __init__(
        self,
        device_ip: str,
        session_id: Optional[str] = None,
        *,
        port: int = NETCAST_PORT,
        timeout: float = NETCAST_TIMEOUT,
        listener: Optional[Any] = None,
    ) -> None:
        self.device_ip = device_ip
        self.port = port
        self.timeout = timeout
        self.session_id = session_id
        self.listener = listener
        self._http: Optional[aiohttp.ClientSession] = None
        self._pending: Set[asyncio.Task] = set()

    @property
    def base_url(self) -> str:
        return f"http://{self.device_ip}:{self.port}/roap/api"

    @property
    def is_paired(self) -> bool:
        return self.session_id is not None

    # === AUTH / PAIRING ===

    async def request_pairing_key(self) -> bool:
        """Ask the TV to show its pairing PIN on screen."""
        body = build_xml('auth', ('type', 'AuthKeyReq'))
        status, _ = await self._post('auth', body)
        return status == HTTP_OK

    async def complete_pairing(self, pin: str) -> bool:
        """Exchange the on-screen PIN for a session id."""
        body = build_xml('auth', ('type', 'AuthReq'), ('value', pin))
        status, text = await self._post('auth', body)
        new_session = parse_session_id(text) if status == HTTP_OK and text else None
        if new_session is None:
            logger.warning("Pairing with %s failed (status=%s)", self.device_ip, status)
            return False

        self.session_id = new_session
        logger.info("Paired with %s", self.device_ip)
        if self.listener is not None:
            self.listener.on_session_key_acquired(new_session)
        return True

    # === KEY COMMANDS ===

    async def send_key(self, key_code: int) -> bool:
        return await self._session_command('HandleKeyInput', ('value', int(key_code)))

    async def send_mouse_click(self) -> bool:
        return await self._session_command('HandleTouchClick')

    async def send_wheel(self, direction: str) -> bool:
        if direction not in (WHEEL_UP, WHEEL_DOWN):
            raise ValueError(f"Wheel direction must be '{WHEEL_UP}' or '{WHEEL_DOWN}', not {direction!r}")
        return await self._session_command('HandleTouchWheel', ('value', direction))

    # === CURSOR ===

    async def set_cursor_visible(self, visible: bool) -> bool:
        """Show or hide the pointer overlay; works without pairing."""
        value = 'true' if visible else 'false'
        body = build_xml('event', ('name', 'CursorVisible'), ('value', value), ('mode', 'auto'))
        status, _ = await self._post('event', body)
        logger.debug("Set cursor visibility to %s: status=%s", visible, status)
        return status == HTTP_OK

    def move_mouse(self, dx: float, dy: float) -> Optional[asyncio.Task]:
        """Schedule a pointer displacement without waiting for the result."""
        if self.session_id is None or (dx == 0 and dy == 0):
            return None

        task = asyncio.ensure_future(self._send_touch_move(int(dx), int(dy)))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _send_touch_move(self, dx: int, dy: int) -> bool:
        return await self._session_command('HandleTouchMove', ('x', dx), ('y', dy), keep_alive=True)

    # === APPS ===

    async def get_app_list(self) -> List[str]:
        """Return the app ids (auid) reported by the TV."""
        http = self._get_http()
        url = f"{self.base_url}/data"
        try:
            async with http.get(url, params={'target': 'applist'},
                                timeout=aiohttp.ClientTimeout(total=self.timeout)) as response:
                text = await response.text(errors='replace')
                if response.status != HTTP_OK:
                    logger.warning("App list request failed: status=%s", response.status)
                    return []
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("App list request to %s failed: %s", url, e)
            return []
        return find_all_text(text, 'auid')

    # === REQUEST HANDLING ===

    async def _session_command(self, command_type: str, *fields: Tuple[str, Any],
                               keep_alive: bool = False) -> bool:
        session = self.session_id
        if session is None:
            logger.debug("Not paired, dropping %s", command_type)
            return False

        body = build_xml('command', ('session', session), ('type', command_type), *fields)
        status, _ = await self._post('command', body, keep_alive=keep_alive)
        if status == HTTP_UNAUTHORIZED:
            self._invalidate(session)
        logger.debug("%s -> status=%s", command_type, status)
        return status == HTTP_OK

    def _invalidate(self, session: str) -> None:
        # Only the first 401 for a given session clears it and notifies.
        if self.session_id != session:
            return
        self.session_id = None
        logger.warning("Session rejected by %s", self.device_ip)
        if self.listener is not None:
            self.listener.on_session_invalid()

    async def _post(self, endpoint: str, body: str, keep_alive: bool = False,
                    timeout: Optional[float] = None) -> Tuple[int, Optional[str]]:
        """POST an XML document. Returns (status, body); status is -1 on transport errors."""
        http = self._get_http()
        url = f"{self.base_url}/{endpoint}"
        headers = {
            'Content-Type': CONTENT_TYPE,
            'Connection': 'keep-alive' if keep_alive else 'close',
        }
        try:
            async with http.post(url, data=body.encode('utf-8'), headers=headers,
                                 timeout=aiohttp.ClientTimeout(total=timeout or self.timeout)) as response:
                text = await response.text(errors='replace')
                if response.status != HTTP_OK:
                    logger.debug("Error for %s - Code: %s, Response: %s", url, response.status, text)
                return response.status, text
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.debug("Request to %s failed: %r", url, e)
            return -1, None

    def _get_http(self) -> aiohttp.ClientSession:
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession()
        return self._http

    async def close(self) -> None:
        for task in list(self._pending):
            task.cancel()
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        if self._http is not None:
            await self._http.close()
            self._http = None
