"""Local HTTP server that publishes files so the TV can fetch them."""

import http.server
import logging
import os
import threading
from typing import Dict, Optional, Tuple
from urllib.parse import quote, unquote

from .config import HTTP_PORT
from .utils import get_local_ip, guess_mime_type

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


def parse_range(header: str, size: int) -> Optional[Tuple[int, int]]:
    """Parse a single ``bytes=start-end`` range. Returns None when it cannot be satisfied."""
    spec = header.strip()[len("bytes="):].split(",", 1)[0].strip()
    start_text, _, end_text = spec.partition("-")
    try:
        if start_text:
            start = int(start_text)
            end = int(end_text) if end_text else size - 1
        else:
            # suffix range: last N bytes
            start = max(size - int(end_text), 0)
            end = size - 1
    except ValueError:
        start, end = 0, size - 1
    end = min(end, size - 1)
    if start >= size or start > end:
        return None
    return start, end


class MediaRequestHandler(http.server.BaseHTTPRequestHandler):
    """Serves published files under /media/<key> with byte-range support."""

    server: "MediaHTTPServer"

    def log_message(self, format, *args):
        logger.debug("TV %s: %s", self.client_address[0], format % args)

    def do_HEAD(self):
        self._serve(send_body=False)

    def do_GET(self):
        self._serve(send_body=True)

    def _serve(self, send_body: bool) -> None:
        if not self.path.startswith("/media/"):
            self.send_error(404, "Not Found")
            return

        key = self.path[len("/media/"):].split("?", 1)[0]
        path = self.server.files.get(unquote(key))
        if path is None or not os.path.isfile(path):
            logger.warning("File not found for key: %s", key)
            self.send_error(404, "File not found")
            return

        size = os.path.getsize(path)
        range_header = self.headers.get("Range")
        if range_header and range_header.startswith("bytes="):
            byte_range = parse_range(range_header, size)
            if byte_range is None:
                self.send_response(416)
                self.send_header("Content-Range", f"bytes */{size}")
                self.send_header("Content-Length", "0")
                self.end_headers()
                return
            start, end = byte_range
            self.send_response(206)
            self.send_header("Content-Range", f"bytes {start}-{end}/{size}")
        else:
            start, end = 0, size - 1
            self.send_response(200)

        length = end - start + 1 if size else 0
        self.send_header("Content-Type", guess_mime_type(path))
        self.send_header("Content-Length", str(length))
        self.send_header("Accept-Ranges", "bytes")
        self.send_header("Access-Control-Allow-Origin", "*")
        self.end_headers()

        if not send_body or not length:
            return
        try:
            with open(path, "rb") as f:
                f.seek(start)
                self._copy(f, length)
        except (BrokenPipeError, ConnectionResetError):
            # TVs routinely drop the connection after probing the first bytes
            logger.debug("Client closed connection while streaming %s", path)

    def _copy(self, f, remaining: int) -> None:
        while remaining > 0:
            chunk = f.read(min(CHUNK_SIZE, remaining))
            if not chunk:
                break
            self.wfile.write(chunk)
            remaining -= len(chunk)


class MediaHTTPServer(http.server.ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, address: Tuple[str, int]) -> None:
        super().__init__(address, MediaRequestHandler)
        self.files: Dict[str, str] = {}


class MediaServer:
    """File publisher: ``publish(path)`` returns a URL the TV can fetch."""

    def __init__(self, host: Optional[str] = None, port: int = HTTP_PORT,
                 bind: str = "") -> None:
        self.host = host
        self.port = port
        self.bind = bind
        self._server: Optional[MediaHTTPServer] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._server is not None

    def start(self) -> None:
        with self._lock:
            if self._server is not None:
                return
            self._server = MediaHTTPServer((self.bind, self.port))
            self.port = self._server.server_address[1]
            if self.host is None:
                self.host = get_local_ip()
            self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
            self._thread.start()
            logger.info("HTTP server started on %s:%s", self.host, self.port)

    def publish(self, local_path: str) -> str:
        """Serve ``local_path`` and return its URL, starting the server on first use."""
        if not os.path.isfile(local_path):
            raise FileNotFoundError(local_path)
        self.start()

        path = os.path.abspath(local_path)
        key = os.path.basename(path)
        stem, ext = os.path.splitext(key)
        counter = 1
        while self._server.files.get(key, path) != path:
            key = f"{stem}-{counter}{ext}"
            counter += 1
        self._server.files[key] = path

        url = f"http://{self.host}:{self.port}/media/{quote(key)}"
        logger.debug("Serving file %s at URL: %s", path, url)
        return url

    def stop(self) -> None:
        with self._lock:
            if self._server is None:
                return
            self._server.shutdown()
            self._server.server_close()
            self._server = None
            self._thread = None
            logger.info("HTTP server stopped")
