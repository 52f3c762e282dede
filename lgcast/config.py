"""Configuration management and constants."""

import json
import logging
import os
from typing import Optional, Dict, List, Any

logger = logging.getLogger(__name__)

# Settings
HTTP_PORT = 8765
CONFIG_DIR = os.path.expanduser("~/.lgcast")
CONFIG_FILE = os.path.join(CONFIG_DIR, "settings.json")
MERGE_CACHE_DIR = os.path.join(CONFIG_DIR, "merged")

# Netcast legacy remote protocol
NETCAST_PORT = 8080
NETCAST_TIMEOUT = 1.5
NETCAST_APP_TIMEOUT = 5.0

# DIAL app launcher
DIAL_PORTS = (56789, 8080, 3000, 3001)
DIAL_DEFAULT_PORT = 56789
DIAL_PROBE_TIMEOUT = 2.0
DIAL_TIMEOUT = 5.0
DIAL_TARGET_APP = "YouTube"

# Media session poller
POLL_INTERVAL = 2.0

# Autoplay sequencer
SLIDESHOW_DELAY = 5.0
ALBUM_DELAY = 10.0
VIDEO_LOAD_DELAY = 5.0
BETWEEN_VIDEOS_DELAY = 2.0
VIDEO_CHECK_INTERVAL = 2.0
VIDEO_MAX_CHECKS = int(30 * 60 / VIDEO_CHECK_INTERVAL)

# App info
APP_VERSION = "0.1.0"


def make_json_serializable(obj: Any) -> Any:
    """Convert an object to be JSON serializable."""
    if obj is None:
        return None
    elif isinstance(obj, (str, int, float, bool)):
        return obj
    elif isinstance(obj, bytes):
        return obj.decode('utf-8', errors='ignore')
    elif isinstance(obj, dict):
        return {str(k): make_json_serializable(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [make_json_serializable(item) for item in obj]
    elif hasattr(obj, '__dict__'):
        return make_json_serializable(obj.__dict__)
    else:
        try:
            return str(obj)
        except Exception:
            return None


class Settings:
    """Persisted settings: selected device, discovered devices and Netcast sessions."""

    def __init__(self, path: str = CONFIG_FILE) -> None:
        self.path = path
        self.current_device: Optional[Dict[str, Any]] = None
        self.discovered_devices: List[Dict[str, Any]] = []
        self.sessions: Dict[str, str] = {}

    def load(self) -> "Settings":
        """Load saved settings, keeping defaults if the file is missing or broken."""
        if os.path.exists(self.path):
            try:
                with open(self.path, encoding='utf-8') as f:
                    data = json.load(f)
                self.current_device = data.get('device')
                self.discovered_devices = data.get('discovered_devices', [])
                self.sessions = data.get('sessions', {})
            except (json.JSONDecodeError, OSError) as e:
                logger.warning("Ignoring unreadable settings file %s: %s", self.path, e)
        return self

    def save(self) -> None:
        """Save current settings."""
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)

        data = {
            'device': make_json_serializable(self.current_device),
            'discovered_devices': make_json_serializable(self.discovered_devices),
            'sessions': dict(self.sessions),
        }
        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2)

    def save_discovered_devices(self, devices: List[Dict[str, Any]]) -> None:
        """Merge discovered devices into the saved list, keyed by IP."""
        for device in devices:
            for i, existing in enumerate(self.discovered_devices):
                if existing.get('ip') == device.get('ip'):
                    self.discovered_devices[i] = device
                    break
            else:
                self.discovered_devices.append(device)

        self.save()

    def find_device(self, ip: str) -> Optional[Dict[str, Any]]:
        for device in self.discovered_devices:
            if device.get('ip') == ip:
                return device
        return None

    def forget_device(self) -> None:
        """Forget the current device and its pairing."""
        if self.current_device:
            self.sessions.pop(self.current_device.get('ip'), None)
        self.current_device = None
        self.save()


class SessionStore:
    """Netcast session listener that persists session ids keyed by device IP."""

    def __init__(self, settings: Settings, device_ip: str) -> None:
        self.settings = settings
        self.device_ip = device_ip
        self.invalidated = False

    def get(self) -> Optional[str]:
        return self.settings.sessions.get(self.device_ip)

    def on_session_key_acquired(self, session_id: str) -> None:
        logger.info("Storing Netcast session for %s", self.device_ip)
        self.settings.sessions[self.device_ip] = session_id
        self.invalidated = False
        self.settings.save()

    def on_session_invalid(self) -> None:
        logger.warning("Netcast session for %s is no longer valid, pairing required",
                       self.device_ip)
        self.settings.sessions.pop(self.device_ip, None)
        self.invalidated = True
        self.settings.save()
