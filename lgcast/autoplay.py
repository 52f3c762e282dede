"""Autoplay of image slideshows/albums and video playlists on the cast device."""

import asyncio
import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from .config import (
    SLIDESHOW_DELAY, ALBUM_DELAY, VIDEO_LOAD_DELAY, BETWEEN_VIDEOS_DELAY,
    VIDEO_CHECK_INTERVAL, VIDEO_MAX_CHECKS,
)
from .session import MediaSession, PlaybackState
from .utils import guess_mime_type
from .youtube import ResolutionError, ResolvedMedia, SplitStreams

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlaylistItem:
    content_ref: str
    display_title: str = ""


class RunKind(Enum):
    IMAGES = "images"
    VIDEOS = "videos"


class RunStatus(Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class MonitorOutcome(Enum):
    FINISHED = "finished"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


class VideoPhase(Enum):
    IDLE = "idle"
    LOADING = "loading"
    PLAYING = "playing"
    FINISHED = "finished"
    ERROR = "error"


@dataclass(frozen=True)
class VideoRunState:
    phase: VideoPhase
    message: Optional[str] = None


VIDEO_IDLE = VideoRunState(VideoPhase.IDLE)
FINISHED_STATES = (PlaybackState.STOPPED, PlaybackState.IDLE, PlaybackState.FINISHED)


class PlaybackRun:
    """One execution of an image or video sequence."""

    def __init__(self, kind: RunKind, items: Sequence) -> None:
        self.kind = kind
        self.items = tuple(items)
        self.status = RunStatus.NOT_STARTED
        self.error: Optional[str] = None
        self.outcomes: List[MonitorOutcome] = []
        self.skipped: List[PlaylistItem] = []
        self.task: Optional[asyncio.Task] = None
        self.cancel_requested = False
        self.cleaned_up = False

    @property
    def active(self) -> bool:
        return self.status is RunStatus.RUNNING and not self.cancel_requested

    def done(self) -> bool:
        return self.task is not None and self.task.done()

    def cancel(self) -> bool:
        """Request cancellation. Returns False if the run was already stopping or over."""
        if self.cancel_requested or self.status not in (RunStatus.NOT_STARTED, RunStatus.RUNNING):
            return False
        self.cancel_requested = True
        if self.task is not None:
            self.task.cancel()
        return True

    async def wait(self) -> None:
        if self.task is not None:
            await asyncio.gather(self.task, return_exceptions=True)


class Autoplayer:
    """Sequences playback on a MediaSession, one item at a time.

    There is one slot for image runs and one for video runs; starting a run
    cancels the previous run of the same kind and waits for its cleanup (a
    single stop command) before the new run sends anything to the TV.
    """

    def __init__(
        self,
        session: MediaSession,
        resolver=None,
        publisher=None,
        merger=None,
        *,
        slideshow_delay: float = SLIDESHOW_DELAY,
        album_delay: float = ALBUM_DELAY,
        video_load_delay: float = VIDEO_LOAD_DELAY,
        between_videos_delay: float = BETWEEN_VIDEOS_DELAY,
        video_check_interval: float = VIDEO_CHECK_INTERVAL,
        video_max_checks: int = VIDEO_MAX_CHECKS,
    ) -> None:
        self.session = session
        self.resolver = resolver
        self.publisher = publisher
        self.merger = merger
        self.slideshow_delay = slideshow_delay
        self.album_delay = album_delay
        self.video_load_delay = video_load_delay
        self.between_videos_delay = between_videos_delay
        self.video_check_interval = video_check_interval
        self.video_max_checks = video_max_checks

        self.video_state = VIDEO_IDLE
        self._runs: Dict[RunKind, Optional[PlaybackRun]] = {kind: None for kind in RunKind}
        self._start_locks = {kind: asyncio.Lock() for kind in RunKind}

    # ======================== RUN MANAGEMENT ========================

    def current_run(self, kind: RunKind) -> Optional[PlaybackRun]:
        return self._runs[kind]

    def is_slideshow_active(self) -> bool:
        run = self._runs[RunKind.IMAGES]
        return run is not None and not run.done()

    def is_playlist_active(self) -> bool:
        run = self._runs[RunKind.VIDEOS]
        return run is not None and not run.done()

    async def _start(self, kind: RunKind, items: Sequence,
                     body: Callable[[PlaybackRun], Awaitable[None]]) -> Optional[PlaybackRun]:
        async with self._start_locks[kind]:
            await self._cancel(kind)
            if not items:
                logger.warning("Cannot play an empty %s sequence", kind.value)
                return None

            run = PlaybackRun(kind, items)
            run.status = RunStatus.RUNNING
            self._runs[kind] = run
            run.task = asyncio.ensure_future(self._execute(run, body))
            return run

    async def _cancel(self, kind: RunKind) -> None:
        run = self._runs[kind]
        if run is None:
            return
        if run.cancel():
            logger.info("Cancelling %s run", kind.value)
        await run.wait()

        # A task cancelled before its first step never reaches _execute's cleanup
        if not run.cleaned_up:
            run.status = RunStatus.CANCELLED
            if kind is RunKind.VIDEOS:
                self.video_state = VIDEO_IDLE
            await self._cleanup(run)
        if self._runs[kind] is run:
            self._runs[kind] = None

    async def _execute(self, run: PlaybackRun, body: Callable[[PlaybackRun], Awaitable[None]]) -> None:
        try:
            await body(run)
            run.status = RunStatus.CANCELLED if run.cancel_requested else RunStatus.COMPLETED
            logger.info("%s run %s", run.kind.value.capitalize(), run.status.value)
        except asyncio.CancelledError:
            run.status = RunStatus.CANCELLED
            logger.info("%s run cancelled", run.kind.value.capitalize())
        except Exception as e:
            run.status = RunStatus.FAILED
            run.error = str(e) or type(e).__name__
            logger.exception("Error in %s playback", run.kind.value)
        finally:
            if run.kind is RunKind.VIDEOS:
                if run.status is RunStatus.FAILED:
                    self.video_state = VideoRunState(VideoPhase.ERROR, run.error)
                else:
                    self.video_state = VIDEO_IDLE
            await self._cleanup(run)
            if self._runs[run.kind] is run:
                self._runs[run.kind] = None

    async def _cleanup(self, run: PlaybackRun) -> None:
        if run.cleaned_up:
            return
        run.cleaned_up = True
        await self.session.stop()

    async def _sleep(self, run: PlaybackRun, seconds: float) -> bool:
        """Suspend, then report whether the run should carry on."""
        await asyncio.sleep(seconds)
        return run.active

    # ======================== IMAGE FUNCTIONS ========================

    async def start_slideshow(self, image_refs: Sequence[str], title: str) -> Optional[PlaybackRun]:
        return await self._play_image_sequence(image_refs, title, self.slideshow_delay)

    async def play_album(self, image_refs: Sequence[str], title: str) -> Optional[PlaybackRun]:
        return await self._play_image_sequence(image_refs, title, self.album_delay)

    async def stop_slideshow(self) -> None:
        await self._cancel(RunKind.IMAGES)
        logger.debug("Slideshow stopped")

    async def _play_image_sequence(self, image_refs: Sequence[str], title: str,
                                   delay: float) -> Optional[PlaybackRun]:
        async def body(run: PlaybackRun) -> None:
            total = len(run.items)
            for index, image_ref in enumerate(run.items):
                if not run.active:
                    break
                try:
                    url, mime_type = self._media_url(image_ref, default_mime='image/jpeg')
                except ResolutionError as e:
                    logger.error("Skipping image %d/%d: %s", index + 1, total, e)
                    continue
                await self.session.play_image(
                    url,
                    title=f"{title} ({index + 1}/{total})",
                    description=f"Image {index + 1} of {total}",
                    mime_type=mime_type,
                )
                if not await self._sleep(run, delay):
                    break

        return await self._start(RunKind.IMAGES, image_refs, body)

    # ======================== VIDEO PLAYLIST FUNCTIONS ========================

    async def play_video_playlist(self, items: Sequence[PlaylistItem],
                                  title: str) -> Optional[PlaybackRun]:
        """Play videos one after another, each until it ends or the ceiling is hit."""
        logger.info("Starting video playlist: %s with %d videos", title, len(items))

        async def body(run: PlaybackRun) -> None:
            total = len(run.items)
            for index, item in enumerate(run.items):
                if not run.active:
                    break
                label = item.display_title or f"Video {index + 1}/{total}"

                try:
                    url, mime_type = await self._resolve(item.content_ref)
                except ResolutionError as e:
                    logger.error("Skipping video %d/%d (%s): %s", index + 1, total, label, e)
                    run.skipped.append(item)
                    continue

                logger.info("Playing video %d/%d: %s", index + 1, total, label)
                self.video_state = VideoRunState(VideoPhase.LOADING)
                await self.session.play_media(url, mime_type, title=label, description=title)

                if not await self._sleep(run, self.video_load_delay):
                    break
                self.video_state = VideoRunState(VideoPhase.PLAYING)

                outcome = await self._wait_for_video_to_finish(run, index, total)
                run.outcomes.append(outcome)
                if outcome is MonitorOutcome.CANCELLED:
                    break
                if outcome is MonitorOutcome.TIMED_OUT:
                    logger.warning("Video %d/%d monitoring timed out, moving on", index + 1, total)

                if index < total - 1 and not await self._sleep(run, self.between_videos_delay):
                    break

        return await self._start(RunKind.VIDEOS, list(items), body)

    async def _wait_for_video_to_finish(self, run: PlaybackRun, index: int,
                                        total: int) -> MonitorOutcome:
        checks = 0
        while checks < self.video_max_checks:
            if not await self._sleep(run, self.video_check_interval):
                return MonitorOutcome.CANCELLED
            checks += 1

            state = self.session.get_current_state()
            if state in FINISHED_STATES:
                logger.info("Video %d/%d finished (state: %s)", index + 1, total, state.value)
                self.video_state = VideoRunState(VideoPhase.FINISHED)
                return MonitorOutcome.FINISHED
            if state is PlaybackState.ERROR:
                logger.error("Video %d/%d encountered an error: %s",
                             index + 1, total, self.session.error_message)
                self.video_state = VideoRunState(VideoPhase.ERROR, "Playback error")
                return MonitorOutcome.FAILED
            if state is PlaybackState.PAUSED:
                logger.debug("Video %d/%d is paused", index + 1, total)
            elif checks % 15 == 0:
                logger.debug("Video %d/%d still playing... (%.0fs elapsed)",
                             index + 1, total, checks * self.video_check_interval)

        logger.warning("Video %d/%d monitoring ceiling reached after %d checks",
                       index + 1, total, checks)
        return MonitorOutcome.TIMED_OUT

    async def stop_playlist(self) -> None:
        await self._cancel(RunKind.VIDEOS)
        self.video_state = VIDEO_IDLE
        logger.debug("Video playlist stopped")

    async def stop_all(self) -> None:
        await self.stop_slideshow()
        await self.stop_playlist()
        logger.debug("All playback stopped")

    # ======================== SINGLE ITEMS ========================

    async def play_video(self, content_ref: str, title: Optional[str] = None) -> bool:
        """Play one video. Unlike playlists, a resolution failure is reported as failure."""
        try:
            url, mime_type = await self._resolve(content_ref)
        except ResolutionError as e:
            logger.error("Cannot play %s: %s", content_ref, e)
            return False
        return await self.session.play_media(url, mime_type, title=title or content_ref)

    async def show_image(self, image_ref: str, title: Optional[str] = None) -> bool:
        try:
            url, mime_type = self._media_url(image_ref, default_mime='image/jpeg')
        except ResolutionError as e:
            logger.error("Cannot show %s: %s", image_ref, e)
            return False
        return await self.session.play_image(url, title=title, mime_type=mime_type)

    # ======================== RESOLUTION ========================

    async def _resolve(self, content_ref: str) -> Tuple[str, str]:
        """Turn a content reference into a (url, mime_type) the TV can fetch."""
        if self.resolver is None:
            return self._media_url(content_ref)

        media = await self.resolver.resolve(content_ref)
        if isinstance(media, SplitStreams):
            if self.merger is None or self.publisher is None:
                raise ResolutionError(f"{media.content_id} needs its audio and video merged")
            path = await self.merger.merge(media)
            return self._publish(path), 'video/mp4'
        if isinstance(media, ResolvedMedia) and media.local_path:
            return self._publish(media.local_path), media.mime_type
        if isinstance(media, ResolvedMedia) and media.url:
            return media.url, media.mime_type
        raise ResolutionError(f"Nothing playable for {content_ref}")

    def _media_url(self, ref: str, default_mime: str = 'video/mp4') -> Tuple[str, str]:
        mime_type = guess_mime_type(ref)
        if mime_type == 'application/octet-stream':
            mime_type = default_mime
        if ref.startswith(('http://', 'https://')):
            return ref, mime_type
        if os.path.isfile(ref):
            return self._publish(ref), mime_type
        raise ResolutionError(f"File not found: {ref}")

    def _publish(self, path: str) -> str:
        if self.publisher is None:
            raise ResolutionError(f"No file publisher to serve {path}")
        try:
            return self.publisher.publish(path)
        except OSError as e:
            raise ResolutionError(f"Cannot publish {path}: {e}") from e
