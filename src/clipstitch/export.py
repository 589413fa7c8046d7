"""Export controller — render and mux a Composition in the background.

State machine:

    IDLE -> PREPARING -> EXPORTING -> COMPLETED | FAILED | CANCELLED

  - PREPARING: validate the composition (non-empty, instructions tile
    the duration), delete any file already at the output path, build
    the ffmpeg command, spawn ffmpeg. Any failure here ends in FAILED
    with stage "prepare"; EXPORTING is never entered. A validation
    failure leaves an existing file at the output path untouched.
  - EXPORTING: ffmpeg writes key=value progress blocks to stdout. Each
    out_time value becomes a progress fraction, clamped so it never
    regresses. Every line read (or read timeout) is a cancellation
    checkpoint.
  - COMPLETED: ffmpeg exited 0 and the output exists and is non-empty.
    The process has exited, so the file is closed.
  - FAILED: ffmpeg error (stage "render", or "mux" once ffmpeg had
    reported the end of the stream) or a missing output. Partial output
    is removed.
  - CANCELLED: requested by the caller, acknowledged at a checkpoint.
    ffmpeg is terminated, partial output removed, no more progress.

One controller runs at most one job. Starting while a job is active is
rejected with ExportBusyError; nothing is queued and nothing is retried.
"""

import asyncio
import enum
import logging
from pathlib import Path

from .common import new_id, remove_file
from .composition import Composition
from .errors import (
    ExportBusyError,
    ExportCancelledError,
    ExportError,
    ExportFailedError,
    ExportSetupFailedError,
)
from .filters import build_export_command
from .instructions import check_tiling
from .settings import default_settings

logger = logging.getLogger(__name__)


class ExportState(enum.Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    EXPORTING = "exporting"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


ACTIVE_STATES = {ExportState.PREPARING, ExportState.EXPORTING}
TERMINAL_STATES = {ExportState.COMPLETED, ExportState.FAILED, ExportState.CANCELLED}

# Marks the end of the progress channel.
_END = None

# How much ffmpeg stderr to keep in error messages.
_STDERR_TAIL = 2000


class ExportJob:
    """One export attempt: state, progress, result, and cancellation flag."""

    def __init__(self, output_path: str | Path):
        self.id = new_id()
        self.output_path = Path(output_path)
        self.state = ExportState.IDLE
        self.progress = 0.0
        self.error: ExportError | None = None
        self._cancel_requested = False
        self._updates: asyncio.Queue = asyncio.Queue()
        self._done = asyncio.Event()
        self._consumer_attached = False
        # Set once PREPARING has cleared the output path; from then on any
        # file there is this job's partial output.
        self._owns_output = False
        self._task: asyncio.Task | None = None

    def __repr__(self):
        return f"ExportJob({self.id}, {self.state.value}, {self.progress:.2f})"

    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_STATES

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    def cancel(self) -> bool:
        """Request cancellation. Returns False if the job already finished."""
        if self.is_terminal:
            return False
        if not self._cancel_requested:
            logger.info("Export %s: cancellation requested", self.id)
        self._cancel_requested = True
        return True

    async def progress_updates(self):
        """Yield progress values in [0, 1] until the job finishes.

        Single consumer: a second concurrent reader raises RuntimeError.
        """
        if self._consumer_attached:
            raise RuntimeError(f"Export {self.id} already has a progress consumer")
        self._consumer_attached = True
        try:
            while True:
                value = await self._updates.get()
                if value is _END:
                    return
                yield value
        finally:
            self._consumer_attached = False

    async def wait(self) -> Path:
        """Wait for a terminal state.

        Returns:
            The output path on COMPLETED.

        Raises:
            ExportError: The recorded failure or cancellation.
        """
        await self._done.wait()
        if self.state is ExportState.COMPLETED:
            return self.output_path
        raise self.error

    # ── State changes (controller only) ──────────────────────────

    def _transition(self, state: ExportState) -> None:
        logger.info("Export %s: %s -> %s", self.id, self.state.value, state.value)
        self.state = state

    def _publish(self, fraction: float) -> None:
        if self.state is not ExportState.EXPORTING or self._cancel_requested:
            return
        # Equal values are delivered; regressions are clamped away.
        fraction = min(1.0, max(self.progress, fraction))
        self.progress = fraction
        self._updates.put_nowait(fraction)

    def _finish(self, state: ExportState, error: ExportError | None = None) -> None:
        self._transition(state)
        self.error = error
        if error is not None:
            logger.warning("Export %s: %s", self.id, error)
        self._updates.put_nowait(_END)
        self._done.set()


class ExportController:
    """Runs exports for one session, one job at a time.

    Args:
        settings: Normalized settings dict (see clipstitch.settings).
        spawn: Coroutine function with the signature of
            asyncio.create_subprocess_exec, used to start ffmpeg.
    """

    def __init__(self, settings: dict | None = None, spawn=None):
        self.settings = settings or default_settings()
        self._spawn = spawn or asyncio.create_subprocess_exec
        self._job: ExportJob | None = None

    @property
    def job(self) -> ExportJob | None:
        return self._job

    @property
    def state(self) -> ExportState:
        return self._job.state if self._job else ExportState.IDLE

    @property
    def is_busy(self) -> bool:
        return self._job is not None and self._job.is_active

    def start(self, composition: Composition, output_path: str | Path) -> ExportJob:
        """Start exporting in a background task. Must run inside an event loop.

        Raises:
            ExportBusyError: A job is already preparing or exporting.
            RuntimeError: No running event loop.
        """
        if self.is_busy:
            raise ExportBusyError(
                f"Export {self._job.id} is still {self._job.state.value}"
            )
        loop = asyncio.get_running_loop()
        job = ExportJob(output_path)
        job._transition(ExportState.PREPARING)
        job._task = loop.create_task(self._run(job, composition))
        self._job = job
        return job

    def cancel(self) -> bool:
        """Cancel the current job, if any is active."""
        if self._job is None:
            return False
        return self._job.cancel()

    # ── Background task ──────────────────────────────────────────

    async def _run(self, job: ExportJob, composition: Composition) -> None:
        proc = None
        stderr_task = None
        try:
            cmd = self._prepare(job, composition)
            if job.cancel_requested:
                job._finish(ExportState.CANCELLED, ExportCancelledError(stage="prepare"))
                return
            try:
                proc = await self._spawn(
                    *cmd,
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as exc:
                raise ExportSetupFailedError(f"Failed to start ffmpeg: {exc}") from exc

            stderr_task = asyncio.create_task(proc.stderr.read())
            job._transition(ExportState.EXPORTING)
            job._publish(0.0)
            await self._monitor(job, proc, composition, stderr_task)
        except ExportError as exc:
            _discard_output(job)
            job._finish(ExportState.FAILED, exc)
        except asyncio.CancelledError:
            if proc is not None:
                await self._stop(proc)
            _discard_output(job)
            job._finish(ExportState.CANCELLED, ExportCancelledError())
            raise
        except Exception as exc:
            if proc is not None:
                await self._stop(proc)
            _discard_output(job)
            job._finish(
                ExportState.FAILED,
                ExportFailedError(f"Export failed: {exc}", stage="render"),
            )
        finally:
            if stderr_task is not None:
                stderr_task.cancel()
                await asyncio.gather(stderr_task, return_exceptions=True)

    def _prepare(self, job: ExportJob, composition: Composition) -> list[str]:
        """PREPARING: validate, clear the output location, build the command.

        Validation failures leave any existing file at the output path alone.
        """
        if composition is None or not composition.instructions:
            raise ExportSetupFailedError("Composition is empty")
        try:
            check_tiling(composition.instructions, composition.duration)
        except ValueError as exc:
            raise ExportSetupFailedError(f"Invalid instructions: {exc}") from exc

        try:
            if remove_file(job.output_path):
                logger.info("Removed existing file at %s", job.output_path)
            job._owns_output = True
            job.output_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ExportSetupFailedError(
                f"Failed to prepare output location {job.output_path}: {exc}"
            ) from exc

        try:
            return build_export_command(composition, job.output_path, self.settings)
        except ValueError as exc:
            raise ExportSetupFailedError(f"Cannot render composition: {exc}") from exc

    async def _monitor(self, job: ExportJob, proc, composition: Composition, stderr_task) -> None:
        """EXPORTING: follow progress until ffmpeg exits or the caller cancels."""
        interval = self.settings["export"]["checkpoint_interval"]
        total = composition.export_duration or composition.duration
        ended = False

        while True:
            if job.cancel_requested:
                await self._acknowledge_cancel(job, proc)
                return
            try:
                line = await asyncio.wait_for(proc.stdout.readline(), timeout=interval)
            except asyncio.TimeoutError:
                continue
            if not line:
                break

            key, _, value = line.decode(errors="replace").strip().partition("=")
            if key in ("out_time_us", "out_time_ms"):
                # Both keys carry microseconds.
                try:
                    seconds = int(value) / 1_000_000
                except ValueError:
                    continue
                job._publish(seconds / total)
            elif key == "progress" and value == "end":
                ended = True

        returncode = await proc.wait()
        stderr = (await stderr_task).decode(errors="replace")

        if job.cancel_requested:
            await self._acknowledge_cancel(job, proc)
            return

        if returncode != 0:
            stage = "mux" if ended else "render"
            raise ExportFailedError(
                f"ffmpeg exited with code {returncode} during {stage}: "
                f"{stderr[-_STDERR_TAIL:].strip()}",
                stage=stage,
                clip=_offending_clip(composition, stderr),
            )

        output = job.output_path
        if not output.exists() or output.stat().st_size == 0:
            raise ExportFailedError(f"ffmpeg produced no output at {output}", stage="mux")

        job._publish(1.0)
        job._finish(ExportState.COMPLETED)
        logger.info("Export %s written to %s", job.id, output)

    async def _acknowledge_cancel(self, job: ExportJob, proc) -> None:
        await self._stop(proc)
        _discard_output(job)
        job._finish(ExportState.CANCELLED, ExportCancelledError())

    async def _stop(self, proc) -> None:
        """Terminate ffmpeg, killing it if it ignores the request."""
        if proc.returncode is not None:
            return
        try:
            proc.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(
                proc.wait(), timeout=self.settings["export"]["terminate_timeout"],
            )
        except asyncio.TimeoutError:
            logger.warning("ffmpeg ignored terminate, killing it")
            proc.kill()
            await proc.wait()


def _discard_output(job: ExportJob) -> None:
    """Remove partial output, but never a file the job did not write."""
    if job._owns_output:
        remove_file(job.output_path)


def _offending_clip(composition: Composition, stderr: str):
    """Find the first clip whose path ffmpeg mentions in its error output."""
    for clip in composition.clips:
        if str(clip.path) in stderr:
            return clip
    return None
