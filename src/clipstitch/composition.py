"""Composition pipeline -- probe, merge, and instruct in one atomic step.

compose() is the only way to obtain a Composition. It either returns a
fully merged timeline whose instructions tile its duration, or raises a
CompositionError naming the offending clip. There is no partial result.
"""

import logging
import math
from dataclasses import dataclass

from .clips import Clip, Probe, load_metadata, probe_clip
from .errors import NoInputError
from .instructions import LayerInstruction, assemble_instructions, check_tiling
from .settings import default_settings
from .tracks import CompositionTrack, build_tracks

logger = logging.getLogger(__name__)


# Renderer timebase: export length is truncated toward zero on this scale.
TIMESCALE = 600


@dataclass(frozen=True)
class Composition:
    clips: tuple[Clip, ...]
    video_track: CompositionTrack
    audio_track: CompositionTrack
    instructions: tuple[LayerInstruction, ...]
    render_size: tuple[int, int]
    fps: int

    @property
    def duration(self) -> float:
        return self.video_track.duration

    @property
    def export_duration(self) -> float:
        return math.floor(self.duration * TIMESCALE) / TIMESCALE

    @property
    def has_audio(self) -> bool:
        """True when at least one clip contributes real (non-gap) audio."""
        return any(not seg.empty for seg in self.audio_track.segments)

    def clip_by_id(self, clip_id: str) -> Clip | None:
        for clip in self.clips:
            if clip.id == clip_id:
                return clip
        return None


async def compose(
    clips: list[Clip],
    settings: dict | None = None,
    probe: Probe = probe_clip,
) -> Composition:
    """Build a Composition from clips in timeline order.

    Steps:
      1. Probe all clips concurrently, join (results in clip order).
      2. Merge clip media onto shared tracks, strictly in order.
      3. Assemble one layer instruction per clip.
      4. Check the instructions tile the whole duration.

    Raises:
        NoInputError: Empty clip list.
        MetadataLoadFailedError, MissingTrackError, InsertFailedError:
            A specific clip could not be composed.
    """
    if not clips:
        raise NoInputError()
    settings = settings or default_settings()
    video = settings["video"]

    clips = list(clips)
    metadata = await load_metadata(clips, probe)
    video_track, audio_track = build_tracks(
        clips, metadata, audio_policy=settings["audio"]["policy"],
    )

    loaded = tuple(clip.with_metadata(meta) for clip, meta in zip(clips, metadata))
    instructions = assemble_instructions(loaded, metadata, video["render_size"])
    check_tiling(instructions, video_track.duration)

    logger.info(
        "Composed %d clips, %.3fs total, render size %dx%d",
        len(loaded), video_track.duration, *video["render_size"],
    )
    return Composition(
        clips=loaded,
        video_track=video_track,
        audio_track=audio_track,
        instructions=instructions,
        render_size=tuple(video["render_size"]),
        fps=video["fps"],
    )
