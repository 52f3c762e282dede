"""Utility functions."""

import mimetypes
import re
import socket
from typing import Optional


def get_local_ip() -> str:
    """Get local IP address."""
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
        try:
            s.connect(('8.8.8.8', 80))
            return s.getsockname()[0]
        except OSError:
            return '127.0.0.1'


def check_port(ip: str, port: int, timeout: float = 0.3) -> bool:
    """Check if a port is open on a host."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.settimeout(timeout)
        try:
            result = sock.connect_ex((ip, port))
            return result == 0
        except OSError:
            return False


def is_youtube_url(url: str) -> bool:
    """Check if URL is a YouTube video."""
    youtube_patterns = [
        "youtube.com/watch",
        "youtu.be/",
        "youtube.com/shorts",
        "youtube.com/live",
        "youtube.com/embed",
    ]
    return any(p in url.lower() for p in youtube_patterns)


_VIDEO_ID_PATTERNS = [
    re.compile(r"(?:youtube\.com/watch\?v=|youtu\.be/|youtube\.com/embed/|youtube\.com/shorts/)([^&\s?/]+)"),
    re.compile(r"^([a-zA-Z0-9_-]{11})$"),
]


def extract_video_id(url: str) -> Optional[str]:
    """Extract a YouTube video id from a URL or a bare 11-character id."""
    for pattern in _VIDEO_ID_PATTERNS:
        match = pattern.search(url.strip())
        if match:
            return match.group(1)
    return None


_MIME_TYPES = {
    '.mp4': 'video/mp4',
    '.mkv': 'video/x-matroska',
    '.avi': 'video/x-msvideo',
    '.mov': 'video/quicktime',
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.png': 'image/png',
    '.gif': 'image/gif',
    '.webp': 'image/webp',
}


def guess_mime_type(name: str) -> str:
    """Guess a MIME type the TV understands from a file name or URL."""
    path = name.lower().split('?', 1)[0]
    for ext, mime in _MIME_TYPES.items():
        if path.endswith(ext):
            return mime
    guessed, _ = mimetypes.guess_type(path)
    return guessed or 'application/octet-stream'


def is_image(name: str) -> bool:
    return guess_mime_type(name).startswith('image/')
