"""Merging split YouTube audio/video streams into a file the TV can play."""

import asyncio
import logging
import os
import shutil
import subprocess
from typing import Optional

from .config import MERGE_CACHE_DIR
from .youtube import ResolutionError, SplitStreams

logger = logging.getLogger(__name__)


def get_cache_path(content_id: str, cache_dir: str = MERGE_CACHE_DIR) -> str:
    """Get the merged output path for a content id."""
    cache_key = "".join(c if c.isalnum() or c in "._-" else "_" for c in content_id)
    return os.path.join(cache_dir, f"{cache_key}.mp4")


def merge_streams(video_url: str, audio_url: str, output_path: str,
                  ffmpeg: str = "ffmpeg", timeout: Optional[float] = None) -> str:
    """Remux a video-only and an audio-only stream into one mp4 (no re-encode of video)."""
    if os.path.exists(output_path):
        logger.info("Using cached merge %s", output_path)
        return output_path

    os.makedirs(os.path.dirname(output_path), exist_ok=True)
    partial_path = output_path + ".part"

    cmd = [
        ffmpeg, "-y",
        "-i", video_url,
        "-i", audio_url,
        "-map", "0:v:0",
        "-map", "1:a:0",
        "-c:v", "copy",
        "-c:a", "aac",
        "-b:a", "128k",
        "-movflags", "+faststart",
        "-f", "mp4",
        partial_path,
    ]

    logger.info("Merging audio and video into %s", output_path)
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout, check=False)
    except (OSError, subprocess.TimeoutExpired) as e:
        _remove(partial_path)
        raise ResolutionError(f"Merge failed: {e}") from e

    if result.returncode != 0:
        _remove(partial_path)
        raise ResolutionError(f"Merge failed: {result.stderr[-500:]}")

    os.replace(partial_path, output_path)
    return output_path


def _remove(path: str) -> None:
    if os.path.exists(path):
        os.remove(path)


class StreamMerger:
    """Merges SplitStreams into cached local files."""

    def __init__(self, cache_dir: str = MERGE_CACHE_DIR, ffmpeg: str = "ffmpeg",
                 timeout: Optional[float] = 600.0) -> None:
        self.cache_dir = cache_dir
        self.ffmpeg = ffmpeg
        self.timeout = timeout

    async def merge(self, streams: SplitStreams) -> str:
        output_path = get_cache_path(streams.content_id, self.cache_dir)
        return await asyncio.to_thread(
            merge_streams, streams.video_url, streams.audio_url, output_path,
            self.ffmpeg, self.timeout)


def clear_cache(cache_dir: str = MERGE_CACHE_DIR) -> int:
    """Clear merged videos. Returns the number of files removed."""
    if not os.path.exists(cache_dir):
        return 0
    count = len(os.listdir(cache_dir))
    shutil.rmtree(cache_dir)
    return count
