"""clipstitch — merge recorded segments into one portrait video.

Probe independently recorded clips, merge them onto shared video and
audio tracks, force every clip into a fixed vertical canvas, and export
the timeline to a single mp4 with progress reporting and cancellation.
"""

from .clips import Clip, ClipMetadata
from .composition import Composition, compose
from .errors import (
    ClipstitchError,
    CompositionError,
    ExportBusyError,
    ExportCancelledError,
    ExportError,
    ExportFailedError,
    ExportSetupFailedError,
    InsertFailedError,
    MetadataLoadFailedError,
    MissingTrackError,
    NoInputError,
    SessionBusyError,
)
from .export import ExportController, ExportJob, ExportState
from .instructions import LayerInstruction
from .session import CompositionSession
from .transform import AffineTransform, force_vertical_transform
