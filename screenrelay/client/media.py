"""Local media acquisition for broadcasters."""
from __future__ import annotations

import logging
from typing import Any, Protocol

from aiortc.contrib.media import MediaPlayer

logger = logging.getLogger(__name__)


class MediaAcquisitionError(RuntimeError):
    """Raised when the local media source cannot be opened."""


class MediaSource(Protocol):
    async def acquire(self) -> list[Any]: ...

    def release(self) -> None: ...


class PlayerMediaSource:
    """Capture tracks through ffmpeg.

    ``PlayerMediaSource(":0.0", format="x11grab")`` grabs an X11 display;
    any file or device string ffmpeg understands works the same way.
    """

    def __init__(self, file: str, *, format: str | None = None, options: dict[str, str] | None = None) -> None:
        self.file = file
        self.format = format
        self.options = options or {}
        self._player: MediaPlayer | None = None

    async def acquire(self) -> list[Any]:
        try:
            self._player = MediaPlayer(self.file, format=self.format, options=self.options)
        except Exception as exc:  # noqa: BLE001 - ffmpeg reports permission and device errors many ways
            raise MediaAcquisitionError(f"could not open media source {self.file!r}: {exc}") from exc

        tracks = [track for track in (self._player.video, self._player.audio) if track is not None]
        if not tracks:
            self.release()
            raise MediaAcquisitionError(f"media source {self.file!r} has no audio or video")
        logger.info("Acquired %d track(s) from %s", len(tracks), self.file)
        return tracks

    def release(self) -> None:
        player, self._player = self._player, None
        if player is None:
            return
        for track in (player.video, player.audio):
            if track is not None:
                track.stop()
