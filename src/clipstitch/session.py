"""Composition session — the single entry point for collaborators.

A session owns one ordered clip list, the Composition built from it,
and one ExportController. The capture side hands over finished segment
files (add_clip), the editing side can undo the newest segment
(delete_last_clip), and the review side builds a playable composition
(build) and exports it (export).

Once a segment file is added, the session owns it and removes it on
deletion or discard. The clip list is frozen while an export runs:
mutations raise SessionBusyError, and the export works from the
immutable Composition snapshot it was started with.

Usage:
    session = CompositionSession()
    session.add_clip(path_a)
    session.add_clip(path_b)
    composition = await session.build()
    job = await session.export()
    async for fraction in job.progress_updates():
        ...
    output = await job.wait()
"""

import logging
from pathlib import Path

from .clips import Clip, Probe, probe_clip
from .common import new_id, remove_file, scratch_path
from .composition import Composition, compose
from .errors import ExportBusyError, ExportError, SessionBusyError
from .export import ExportController, ExportJob, ExportState
from .settings import default_settings

logger = logging.getLogger(__name__)


class CompositionSession:
    def __init__(
        self,
        settings: dict | None = None,
        probe: Probe = probe_clip,
        controller: ExportController | None = None,
    ):
        self.settings = settings or default_settings()
        # Names the export file; unique per session.
        self.session_id = new_id()
        self.controller = controller or ExportController(self.settings)
        self._probe = probe
        self._clips: list[Clip] = []
        self._composition: Composition | None = None

    def __repr__(self):
        return f"CompositionSession({self.session_id}, {len(self._clips)} clips)"

    # ── State ────────────────────────────────────────────────────

    @property
    def clips(self) -> tuple[Clip, ...]:
        return tuple(self._clips)

    @property
    def composition(self) -> Composition | None:
        """The last successful build, or None if clips changed since."""
        return self._composition

    @property
    def scratch_dir(self) -> Path:
        return Path(self.settings["session"]["scratch_dir"])

    @property
    def output_path(self) -> Path:
        return scratch_path(
            self.scratch_dir, self.session_id, self.settings["export"]["container"],
        )

    @property
    def export_state(self) -> ExportState:
        return self.controller.state

    @property
    def is_exporting(self) -> bool:
        return self.controller.is_busy

    def recorded_duration(self) -> float:
        """Sum of clip durations known so far (loaded by build())."""
        return sum(c.duration for c in self._clips if c.duration is not None)

    def remaining_duration(self) -> float | None:
        """Seconds left under session.max_duration, or None if unlimited."""
        limit = self.settings["session"]["max_duration"]
        if limit is None:
            return None
        return max(0.0, limit - self.recorded_duration())

    # ── Clip list ────────────────────────────────────────────────

    def new_segment_path(self) -> Path:
        """Fresh scratch path for the capture side to record the next segment into."""
        self.scratch_dir.mkdir(parents=True, exist_ok=True)
        return scratch_path(
            self.scratch_dir, new_id(), self.settings["session"]["segment_extension"],
        )

    def add_clip(self, path: str | Path) -> Clip:
        """Append a finished segment. The session now owns the file.

        Raises:
            FileNotFoundError: The segment file does not exist.
            SessionBusyError: An export is running.
        """
        self._ensure_not_exporting("add a clip")
        p = Path(path)
        if not p.exists():
            raise FileNotFoundError(f"Segment not found: {p}")
        clip = Clip.from_path(p)
        self._clips.append(clip)
        self._composition = None
        logger.info("Added clip %s (%d in session)", p, len(self._clips))
        return clip

    def delete_last_clip(self) -> Clip | None:
        """Undo the newest segment: drop it and delete its file.

        Returns:
            The removed Clip, or None when the session is empty.

        Raises:
            SessionBusyError: An export is running.
        """
        self._ensure_not_exporting("delete a clip")
        if not self._clips:
            return None
        clip = self._clips.pop()
        self._composition = None
        try:
            remove_file(clip.path)
        except OSError as exc:
            logger.error("Error deleting segment %s: %s", clip.path, exc)
        logger.info("Deleted last clip %s", clip.path)
        return clip

    # ── Composition / export ─────────────────────────────────────

    async def build(self) -> Composition:
        """Compose the current clip list.

        On failure the previous composition (if any) is left untouched
        and the error propagates to the caller.
        """
        snapshot = list(self._clips)
        composition = await compose(snapshot, self.settings, self._probe)

        # Only cache if nobody changed the clip list while we were probing.
        if [c.id for c in self._clips] == [c.id for c in snapshot]:
            self._clips = list(composition.clips)
            self._composition = composition
        return composition

    async def export(self, output_path: str | Path | None = None) -> ExportJob:
        """Start exporting the composition (built first if needed).

        Writes to `<scratch_dir>/<session_id>.<container>` unless an
        explicit output_path is given.

        Raises:
            ExportBusyError: An export is already running.
            CompositionError: The clip list could not be composed.
        """
        if self.controller.is_busy:
            raise ExportBusyError("An export is already running for this session")
        composition = self._composition or await self.build()
        return self.controller.start(composition, output_path or self.output_path)

    def cancel_export(self) -> bool:
        return self.controller.cancel()

    async def discard(self) -> None:
        """Tear down: cancel any export, delete every segment file."""
        job = self.controller.job
        if job is not None and job.is_active:
            job.cancel()
            try:
                await job.wait()
            except ExportError as exc:
                logger.debug("Export ended during discard: %s", exc)

        for clip in self._clips:
            try:
                remove_file(clip.path)
            except OSError as exc:
                logger.error("Error deleting segment %s: %s", clip.path, exc)
        self._clips.clear()
        self._composition = None
        logger.info("Discarded session %s", self.session_id)

    def _ensure_not_exporting(self, action: str) -> None:
        if self.controller.is_busy:
            raise SessionBusyError(f"Cannot {action} while an export is running")
