"""clipstitch.common — shared helpers.

Contains: ffmpeg executable lookup, path variable resolution, and
scratch-file naming/removal used by the session and export stages.
"""

import logging
import re
import uuid
from pathlib import Path

import imageio_ffmpeg

logger = logging.getLogger(__name__)


# ── ffmpeg ─────────────────────────────────────────────────────────
# imageio-ffmpeg bundles a static ffmpeg (but no ffprobe), so probing
# goes through moviepy's header parser instead.

FFMPEG = imageio_ffmpeg.get_ffmpeg_exe()


# ── Path utilities ─────────────────────────────────────────────────

def resolve_path_vars(text: str, paths: dict[str, str]) -> str:
    """Replace ${name} variables in a string using the paths dict."""
    def _replace(match):
        key = match.group(1)
        if key not in paths:
            raise ValueError(f"Unknown path variable: ${{{key}}}")
        return paths[key]
    return re.sub(r"\$\{(\w+)\}", _replace, text)


def new_id() -> str:
    """Generate a unique identifier for a clip, segment file or export."""
    return uuid.uuid4().hex


def scratch_path(scratch_dir: str | Path, name: str, extension: str) -> Path:
    """Build `<scratch_dir>/<name>.<extension>`."""
    return Path(scratch_dir) / f"{name}.{extension.lstrip('.')}"


def remove_file(path: str | Path) -> bool:
    """Delete a file if it exists. Returns True when something was removed."""
    p = Path(path)
    if not p.exists():
        return False
    p.unlink()
    logger.debug("Removed %s", p)
    return True
