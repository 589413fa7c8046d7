"""Recorded source segments and their probed metadata.

A Clip is created when a recording finishes and handed to a session.
It is immutable: loading metadata returns a new Clip with the cached
duration and natural size filled in.

Metadata for all clips is fetched concurrently (one worker-thread probe
per clip) and joined before anything else happens, so results are always
indexed by clip position, never by completion order.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable

from moviepy.video.io.ffmpeg_reader import ffmpeg_parse_infos

from .common import new_id
from .errors import MetadataLoadFailedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClipMetadata:
    """Stream facts for one clip.

    natural_size is the stored stream size, before any rotation tag is
    applied. rotation is the container's display rotation in clockwise
    degrees (0, 90, 180 or 270). The export decodes stored frames and
    ignores the tag; the force-vertical transform is the only rotation.
    """

    duration: float
    natural_size: tuple[int, int]
    has_video: bool
    has_audio: bool
    fps: float | None = None
    rotation: int = 0


@dataclass(frozen=True)
class Clip:
    id: str
    path: Path
    duration: float | None = None
    natural_size: tuple[int, int] | None = None

    @classmethod
    def from_path(cls, path: str | Path) -> "Clip":
        return cls(id=new_id(), path=Path(path))

    @property
    def is_loaded(self) -> bool:
        return self.duration is not None and self.natural_size is not None

    def with_metadata(self, meta: ClipMetadata) -> "Clip":
        return replace(self, duration=meta.duration, natural_size=meta.natural_size)


# ── Probing ───────────────────────────────────────────────────────

Probe = Callable[[Path], ClipMetadata]


def probe_clip(path: str | Path) -> ClipMetadata:
    """Read duration, size and stream presence from a media file header.

    Uses moviepy's ffmpeg header parser (the bundled imageio-ffmpeg has
    no ffprobe). Blocking; callers run it in a worker thread.
    """
    infos = ffmpeg_parse_infos(str(path))

    duration = infos.get("duration") or 0.0
    has_video = bool(infos.get("video_found"))
    has_audio = bool(infos.get("audio_found"))

    size = (0, 0)
    rotation = 0
    if has_video:
        w, h = infos["video_size"]
        size = (w, h)
        rotation = int(round(float(infos.get("video_rotation") or 0))) % 360

    return ClipMetadata(
        duration=float(duration),
        natural_size=(int(size[0]), int(size[1])),
        has_video=has_video,
        has_audio=has_audio,
        fps=infos.get("video_fps"),
        rotation=rotation,
    )


async def _load_one(clip: Clip, probe: Probe) -> ClipMetadata:
    try:
        meta = await asyncio.to_thread(probe, clip.path)
    except Exception as exc:
        raise MetadataLoadFailedError(
            f"Failed to load metadata for clip {clip.path}: {exc}", clip=clip,
        ) from exc
    logger.debug(
        "Probed %s: %.3fs %dx%d video=%s audio=%s",
        clip.path, meta.duration, *meta.natural_size, meta.has_video, meta.has_audio,
    )
    return meta


async def load_metadata(clips: list[Clip], probe: Probe = probe_clip) -> list[ClipMetadata]:
    """Probe every clip concurrently and return metadata in clip order.

    All probes are joined before returning. If any probe fails, the first
    failure in clip order is raised as MetadataLoadFailedError.
    """
    tasks = [asyncio.create_task(_load_one(clip, probe)) for clip in clips]
    results = await asyncio.gather(*tasks, return_exceptions=True)

    for result in results:
        if isinstance(result, BaseException):
            raise result
    return list(results)
