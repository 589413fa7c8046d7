"""Track builder — sequential merge of clip media onto shared tracks.

Clip i occupies [offset_i, offset_i + duration_i) on every track, with
offset_0 = 0 and offset_i = offset_{i-1} + duration_{i-1}.

Audio is merged onto ONE shared track. A clip without audio is either
a hard failure (policy "require") or gets an empty gap segment of the
same length (policy "tolerate"), so the offset law holds on both tracks
either way.

Tracks are built into fresh local objects and only returned once every
clip has been placed. A failure at clip k leaves nothing from clips
0..k-1 reachable by the caller.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from .clips import Clip, ClipMetadata
from .errors import InsertFailedError, MetadataLoadFailedError, MissingTrackError

logger = logging.getLogger(__name__)


VIDEO = "video"
AUDIO = "audio"

AUDIO_POLICIES = {"require", "tolerate"}


@dataclass(frozen=True)
class TrackSegment:
    """One clip's media placed on a composition track.

    The source range is always [0, duration) of the clip.
    `empty` marks a gap (silence) standing in for missing audio.
    """

    clip_id: str
    source: Path
    media_kind: str
    start: float
    duration: float
    empty: bool = False

    @property
    def end(self) -> float:
        return self.start + self.duration


class CompositionTrack:
    """Append-only track of contiguous segments for a single media kind."""

    def __init__(self, media_kind: str):
        if media_kind not in (VIDEO, AUDIO):
            raise ValueError(f"Unknown media kind: '{media_kind}'")
        self.media_kind = media_kind
        self._segments: list[TrackSegment] = []
        self._end = 0.0

    @property
    def segments(self) -> tuple[TrackSegment, ...]:
        return tuple(self._segments)

    @property
    def duration(self) -> float:
        return self._end

    def __len__(self):
        return len(self._segments)

    def insert(
        self,
        clip: Clip,
        duration: float,
        at: float,
        media_kind: str,
        empty: bool = False,
    ) -> TrackSegment:
        """Place [0, duration) of a clip's media at time `at`.

        Only appends are allowed: `at` must equal the current track end.

        Raises:
            InsertFailedError: wrong media kind, non-positive duration,
                or a start that would leave a gap or overlap.
        """
        if media_kind != self.media_kind:
            raise InsertFailedError(
                f"Cannot insert {media_kind} media from {clip.path} "
                f"into a {self.media_kind} track",
                clip=clip,
            )
        if duration <= 0:
            raise InsertFailedError(
                f"Cannot insert clip {clip.path} with duration {duration}",
                clip=clip,
            )
        if at != self._end:
            raise InsertFailedError(
                f"Cannot insert clip {clip.path} at {at:.3f}s: "
                f"{self.media_kind} track ends at {self._end:.3f}s",
                clip=clip,
            )

        segment = TrackSegment(
            clip_id=clip.id,
            source=clip.path,
            media_kind=media_kind,
            start=at,
            duration=duration,
            empty=empty,
        )
        self._segments.append(segment)
        self._end = at + duration
        return segment

    def insert_empty(self, clip: Clip, duration: float, at: float) -> TrackSegment:
        """Insert a gap of `duration` standing in for the clip's media."""
        return self.insert(clip, duration, at, self.media_kind, empty=True)


def _check_clip(clip: Clip, meta: ClipMetadata, audio_policy: str) -> None:
    if meta.duration <= 0:
        raise MetadataLoadFailedError(
            f"Invalid duration {meta.duration} for clip {clip.path}", clip=clip,
        )
    if not meta.has_video:
        raise MissingTrackError(clip, VIDEO)
    if min(meta.natural_size) <= 0:
        raise MetadataLoadFailedError(
            f"Invalid natural size {meta.natural_size} for clip {clip.path}", clip=clip,
        )
    if not meta.has_audio and audio_policy == "require":
        raise MissingTrackError(clip, AUDIO)


def build_tracks(
    clips: list[Clip],
    metadata: list[ClipMetadata],
    audio_policy: str = "require",
) -> tuple[CompositionTrack, CompositionTrack]:
    """Merge clips onto one video track and one audio track, in order.

    Args:
        clips: Clips in timeline order.
        metadata: Probed metadata, metadata[i] belongs to clips[i].
        audio_policy: "require" (missing audio fails the build) or
            "tolerate" (missing audio becomes a silent gap).

    Returns:
        (video_track, audio_track)

    Raises:
        MetadataLoadFailedError: A clip has a non-positive duration or size.
        MissingTrackError: A clip lacks video, or audio under "require".
        InsertFailedError: A clip could not be placed on a track.
    """
    if audio_policy not in AUDIO_POLICIES:
        raise ValueError(
            f"Invalid audio policy '{audio_policy}'. Valid: {sorted(AUDIO_POLICIES)}"
        )
    if len(clips) != len(metadata):
        raise ValueError(
            f"Got {len(metadata)} metadata entries for {len(clips)} clips"
        )

    video_track = CompositionTrack(VIDEO)
    audio_track = CompositionTrack(AUDIO)
    start = 0.0

    for clip, meta in zip(clips, metadata):
        _check_clip(clip, meta, audio_policy)

        video_track.insert(clip, meta.duration, at=start, media_kind=VIDEO)
        if meta.has_audio:
            audio_track.insert(clip, meta.duration, at=start, media_kind=AUDIO)
        else:
            logger.info("Clip %s has no audio, inserting %.3fs of silence", clip.path, meta.duration)
            audio_track.insert_empty(clip, meta.duration, at=start)

        start += meta.duration

    logger.debug(
        "Built tracks: %d clips, %.3fs video, %.3fs audio",
        len(clips), video_track.duration, audio_track.duration,
    )
    return video_track, audio_track
