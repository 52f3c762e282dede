"""YouTube content resolution."""

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from .utils import extract_video_id, guess_mime_type, is_youtube_url

logger = logging.getLogger(__name__)

MAX_HEIGHT = 1080


class ResolutionError(Exception):
    """A content reference could not be turned into something the TV can play."""


@dataclass
class ResolvedMedia:
    """A single playable stream: a URL the TV can fetch, or a local file to publish."""
    mime_type: str
    url: Optional[str] = None
    local_path: Optional[str] = None
    title: Optional[str] = None


@dataclass
class SplitStreams:
    """Separate video-only and audio-only streams that must be merged first."""
    video_url: str
    audio_url: str
    content_id: str
    title: Optional[str] = None


Resolution = Union[ResolvedMedia, SplitStreams]


def _height(fmt: Dict[str, Any]) -> int:
    return fmt.get('height') or 0


def _is_muxed(fmt: Dict[str, Any]) -> bool:
    return fmt.get('vcodec', 'none') != 'none' and fmt.get('acodec', 'none') != 'none'


def _is_video_only(fmt: Dict[str, Any]) -> bool:
    return fmt.get('vcodec', 'none') != 'none' and fmt.get('acodec', 'none') == 'none'


def _is_audio_only(fmt: Dict[str, Any]) -> bool:
    return fmt.get('vcodec', 'none') == 'none' and fmt.get('acodec', 'none') != 'none'


def select_streams(info: Dict[str, Any], max_height: int = MAX_HEIGHT) -> Resolution:
    """Pick the best stream(s) from a yt-dlp info dict.

    A muxed mp4 is preferred since the TV can play it directly; otherwise the
    best video-only stream is paired with the best audio stream.
    """
    video_id = info.get('id', 'video')
    title = info.get('title')
    formats: List[Dict[str, Any]] = [f for f in info.get('formats') or [] if f.get('url')]

    muxed = [f for f in formats
             if _is_muxed(f) and f.get('ext') == 'mp4' and _height(f) <= max_height]
    if muxed:
        best = max(muxed, key=lambda f: (_height(f), f.get('tbr') or 0))
        return ResolvedMedia(mime_type='video/mp4', url=best['url'], title=title)

    videos = [f for f in formats if _is_video_only(f) and _height(f) <= max_height]
    audios = [f for f in formats if _is_audio_only(f)]
    if videos and audios:
        video = max(videos, key=lambda f: (_height(f), f.get('ext') == 'mp4', f.get('tbr') or 0))
        audio = max(audios, key=lambda f: (f.get('ext') == 'm4a', f.get('abr') or 0))
        return SplitStreams(video_url=video['url'], audio_url=audio['url'],
                            content_id=video_id, title=title)

    if info.get('url'):
        return ResolvedMedia(mime_type='video/mp4', url=info['url'], title=title)

    raise ResolutionError(f"No playable stream found for {video_id}")


def extract_info(url: str) -> Dict[str, Any]:
    """Fetch video metadata and stream formats without downloading."""
    import yt_dlp

    with yt_dlp.YoutubeDL({'quiet': True, 'no_warnings': True}) as ydl:
        try:
            return ydl.extract_info(url, download=False)
        except yt_dlp.utils.DownloadError as e:
            raise ResolutionError(f"Failed to get video info: {e}") from e


class YouTubeResolver:
    """Content resolver for YouTube ids/URLs, plain http URLs and local files."""

    def __init__(self, max_height: int = MAX_HEIGHT) -> None:
        self.max_height = max_height

    async def resolve(self, content_ref: str) -> Resolution:
        ref = content_ref.strip()
        if not ref:
            raise ResolutionError("Empty content reference")

        video_id = extract_video_id(ref) if not os.path.exists(ref) else None
        if is_youtube_url(ref) or (video_id and not ref.startswith(('http://', 'https://'))):
            if not video_id:
                raise ResolutionError(f"Not a YouTube video URL: {ref}")
            logger.info("Fetching YouTube video info for %s", video_id)
            url = f"https://www.youtube.com/watch?v={video_id}"
            info = await asyncio.to_thread(extract_info, url)
            media = select_streams(info, self.max_height)
            logger.debug("Resolved %s to %s", video_id, type(media).__name__)
            return media

        if ref.startswith(('http://', 'https://')):
            return ResolvedMedia(mime_type=guess_mime_type(ref), url=ref)

        if os.path.isfile(ref):
            path = os.path.abspath(ref)
            return ResolvedMedia(mime_type=guess_mime_type(path), local_path=path,
                                 title=os.path.basename(path))

        raise ResolutionError(f"File not found: {ref}")
