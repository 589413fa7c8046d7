"""Error taxonomy for composition and export.

Every per-clip error carries the offending Clip (when known) so callers
can point at the exact segment. Composition errors abort the whole build;
export errors always leave the output location clean.
"""


class ClipstitchError(Exception):
    """Base class for all clipstitch errors."""

    def __init__(self, message: str, clip=None):
        super().__init__(message)
        self.clip = clip


# ── Composition ───────────────────────────────────────────────────


class CompositionError(ClipstitchError):
    """Building the merged timeline failed."""


class NoInputError(CompositionError, ValueError):
    """The clip list is empty."""

    def __init__(self, message: str = "No clips provided for composition"):
        super().__init__(message)


class MissingTrackError(CompositionError):
    """A clip lacks a required video or audio stream."""

    def __init__(self, clip, kind: str):
        super().__init__(f"No {kind} track found for clip {clip.path}", clip=clip)
        self.kind = kind


class MetadataLoadFailedError(CompositionError):
    """Duration, size or stream info could not be loaded for a clip."""


class InsertFailedError(CompositionError):
    """A clip's media could not be placed on a composition track."""


# ── Export ────────────────────────────────────────────────────────


class ExportError(ClipstitchError):
    """Export did not complete. `stage` is "prepare", "render" or "mux"."""

    def __init__(self, message: str, stage: str, clip=None):
        super().__init__(message, clip=clip)
        self.stage = stage


class ExportSetupFailedError(ExportError):
    """The export could not be started (validation, output path, process)."""

    def __init__(self, message: str, clip=None):
        super().__init__(message, stage="prepare", clip=clip)


class ExportFailedError(ExportError):
    """Rendering or muxing failed mid-operation."""


class ExportCancelledError(ExportError):
    """The caller cancelled the export."""

    def __init__(self, message: str = "Export cancelled", stage: str = "render"):
        super().__init__(message, stage=stage)


class ExportBusyError(ClipstitchError):
    """An export is already running on this controller."""


class SessionBusyError(ClipstitchError):
    """The clip list cannot change while an export is active."""
