"""Media-control session: play/stop on a cast device and playback-state polling."""

import asyncio
import logging
import threading
from enum import Enum
from typing import Callable, List, Optional, Tuple

from .config import POLL_INTERVAL
from .dlna import CastCapability, CastError, CastPlayState

logger = logging.getLogger(__name__)


class PlaybackState(Enum):
    IDLE = "IDLE"
    LOADING = "LOADING"
    PLAYING = "PLAYING"
    PAUSED = "PAUSED"
    FINISHED = "FINISHED"
    STOPPED = "STOPPED"
    ERROR = "ERROR"


# States the poller may not overwrite until the next explicit play
TERMINAL_STATES = frozenset({
    PlaybackState.IDLE, PlaybackState.FINISHED, PlaybackState.STOPPED, PlaybackState.ERROR,
})

# Paused media is still polled so a resume or end of playback is noticed
POLLING_STATES = frozenset({PlaybackState.LOADING, PlaybackState.PLAYING, PlaybackState.PAUSED})

NORMALIZED_STATES = {
    CastPlayState.PLAYING: PlaybackState.PLAYING,
    CastPlayState.BUFFERING: PlaybackState.PLAYING,
    CastPlayState.PAUSED: PlaybackState.PAUSED,
    CastPlayState.IDLE: PlaybackState.IDLE,
    CastPlayState.FINISHED: PlaybackState.FINISHED,
}

StateListener = Callable[[PlaybackState, Optional[str]], None]


class PlaybackStateHolder:
    """Thread-safe playback state with a generation counter.

    Each explicit play or stop starts a new generation; writes tagged with an
    older generation (late callbacks, in-flight polls) are dropped.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state = PlaybackState.IDLE
        self._message: Optional[str] = None
        self._generation = 0
        self.listeners: List[StateListener] = []

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def get(self) -> PlaybackState:
        with self._lock:
            return self._state

    def snapshot(self) -> Tuple[PlaybackState, Optional[str]]:
        with self._lock:
            return self._state, self._message

    def begin(self, state: Optional[PlaybackState] = None) -> int:
        """Start a new generation, optionally resetting the state. Returns the generation."""
        with self._lock:
            self._generation += 1
            generation = self._generation
            changed = state is not None and state != self._state
            if state is not None:
                self._state, self._message = state, None
        if changed:
            self._notify(state, None)
        return generation

    def transition(self, state: PlaybackState, generation: int,
                   message: Optional[str] = None) -> bool:
        """Request-driven write; applies only within its own generation."""
        with self._lock:
            if generation != self._generation:
                return False
            changed = (state, message) != (self._state, self._message)
            self._state, self._message = state, message
        if changed:
            self._notify(state, message)
        return True

    def observe(self, state: PlaybackState, generation: int) -> bool:
        """Poller write; ignored once a terminal state has been reached."""
        with self._lock:
            if generation != self._generation or self._state in TERMINAL_STATES:
                return False
            if state == self._state:
                return False
            logger.debug("Playback state changed: %s -> %s", self._state.value, state.value)
            self._state, self._message = state, None
        self._notify(state, None)
        return True

    def _notify(self, state: PlaybackState, message: Optional[str]) -> None:
        for listener in list(self.listeners):
            listener(state, message)


def normalize_play_state(observed: CastPlayState) -> Optional[PlaybackState]:
    """Map a renderer play state to a PlaybackState; None when it tells us nothing."""
    return NORMALIZED_STATES.get(observed)


class MediaSession:
    """Owns the playback state of one connected cast device.

    Play and stop commands are serialised so only one is in flight at a time.
    After a successful video launch a background poller samples the renderer
    every ``poll_interval`` seconds until a terminal state is reached or the
    session is closed.
    """

    def __init__(self, capability: CastCapability, *, poll_interval: float = POLL_INTERVAL,
                 query_timeout: float = 5.0) -> None:
        self.capability = capability
        self.poll_interval = poll_interval
        self.query_timeout = query_timeout
        self.state = PlaybackStateHolder()
        self._command_lock = asyncio.Lock()
        self._closed = asyncio.Event()
        self._poller: Optional[asyncio.Task] = None

    def get_current_state(self) -> PlaybackState:
        return self.state.get()

    @property
    def error_message(self) -> Optional[str]:
        return self.state.snapshot()[1]

    @property
    def is_closed(self) -> bool:
        return self._closed.is_set()

    @property
    def is_polling(self) -> bool:
        return self._poller is not None and not self._poller.done()

    async def play_media(self, url: str, mime_type: str, title: Optional[str] = None,
                         description: Optional[str] = None) -> bool:
        """Play a video or audio URL and start monitoring it."""
        return await self._play(url, mime_type, title, description, monitor=True)

    async def play_image(self, url: str, title: Optional[str] = None,
                         description: Optional[str] = None, mime_type: str = "image/jpeg") -> bool:
        """Display an image. Images never finish on their own, so nothing is polled."""
        return await self._play(url, mime_type, title, description, monitor=False)

    async def _play(self, url: str, mime_type: str, title: Optional[str],
                    description: Optional[str], monitor: bool) -> bool:
        if self.is_closed:
            logger.error("Play requested on a closed session")
            return False

        # LOADING is visible before any network round-trip
        generation = self.state.begin(PlaybackState.LOADING)
        self._cancel_poller()
        logger.info("Playing %s (%s)", title or url, mime_type)

        async with self._command_lock:
            try:
                await self.capability.play(url, mime_type, title, description)
            except CastError as e:
                logger.error("Launch failed: %s", e)
                self.state.transition(PlaybackState.ERROR, generation, str(e))
                return False

        if self.state.transition(PlaybackState.PLAYING, generation) and monitor:
            self._poller = asyncio.ensure_future(self._poll(generation))
            self._poller.add_done_callback(self._on_poller_done)
        return True

    async def stop(self) -> bool:
        """Stop playback. Stopping an idle session is harmless."""
        previous = self.state.get()
        self._cancel_poller()
        generation = self.state.begin()

        async with self._command_lock:
            try:
                await self.capability.stop()
            except CastError as e:
                if previous in (PlaybackState.IDLE, PlaybackState.STOPPED):
                    logger.debug("Stop on idle renderer failed: %s", e)
                    return True
                logger.error("Failed to stop media: %s", e)
                self.state.transition(PlaybackState.ERROR, generation, str(e))
                return False

        logger.info("Media stopped")
        self.state.transition(PlaybackState.STOPPED, generation)
        return True

    async def close(self) -> None:
        """Tear the session down; the poller exits and further plays are refused."""
        self._closed.set()
        poller = self._poller
        self._cancel_poller()
        if poller is not None:
            await asyncio.gather(poller, return_exceptions=True)

    def _cancel_poller(self) -> None:
        if self._poller is not None and not self._poller.done():
            self._poller.cancel()
        self._poller = None

    async def _poll(self, generation: int) -> None:
        logger.debug("Starting playback state monitoring")
        while True:
            state = self.state.get()
            if state not in POLLING_STATES or self.state.generation != generation:
                logger.debug("Playback monitoring stopped - state: %s", state.value)
                return

            try:
                await asyncio.wait_for(self._closed.wait(), timeout=self.poll_interval)
                logger.debug("Playback monitoring stopped - session closed")
                return
            except asyncio.TimeoutError:
                pass

            try:
                observed = await asyncio.wait_for(self.capability.query_state(),
                                                  timeout=self.query_timeout)
            except (CastError, asyncio.TimeoutError) as e:
                # Couldn't observe this round; keep the current state
                logger.warning("Error getting play state: %s", e or "timeout")
                continue

            new_state = normalize_play_state(observed)
            if new_state is not None:
                self.state.observe(new_state, generation)

    @staticmethod
    def _on_poller_done(task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error("Error in playback monitoring", exc_info=task.exception())
