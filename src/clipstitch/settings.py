"""Settings loader — render, audio, export and session options from YAML.

Every key is optional; missing keys fall back to DEFAULTS. Path values
may use ${name} variables from a `paths:` block, plus the built-in
${tmp} (the system temp directory).

Settings schema:
  video:
    render_size: [1080, 1920]   # portrait canvas every clip is forced into
    fps: 30
    codec: libx264
    crf: 20
    preset: medium
  audio:
    policy: require             # "require" or "tolerate" (silence for clips without audio)
    sample_rate: 44100
    bitrate: 128k
  export:
    container: mp4
    faststart: true             # moov atom up front for network playback
    checkpoint_interval: 0.5    # seconds between cancellation checks
    terminate_timeout: 5.0      # seconds to wait for ffmpeg before killing it
  session:
    scratch_dir: "${tmp}"
    segment_extension: mov
    max_duration: null          # optional recording limit in seconds
  paths:
    renders: "/data/renders"
"""

import copy
import tempfile
from pathlib import Path

import yaml

from .common import resolve_path_vars
from .tracks import AUDIO_POLICIES


DEFAULTS = {
    "video": {
        "render_size": (1080, 1920),
        "fps": 30,
        "codec": "libx264",
        "crf": 20,
        "preset": "medium",
    },
    "audio": {
        "policy": "require",
        "sample_rate": 44100,
        "bitrate": "128k",
    },
    "export": {
        "container": "mp4",
        "faststart": True,
        "checkpoint_interval": 0.5,
        "terminate_timeout": 5.0,
    },
    "session": {
        "scratch_dir": "${tmp}",
        "segment_extension": "mov",
        "max_duration": None,
    },
}


def default_settings() -> dict:
    """Return normalized default settings (no file needed)."""
    return normalize_settings({})


def load_settings(settings_path: str | Path) -> dict:
    """Load, validate, and normalize a settings YAML file.

    Processing pipeline:
      1. Parse YAML (an empty file means all defaults).
      2. Merge each section over DEFAULTS.
      3. Resolve ${path} variables in session.scratch_dir.
      4. Validate types and ranges.

    Raises:
        ValueError: Invalid or unknown fields.
        FileNotFoundError: Missing settings file.
    """
    with open(settings_path) as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ValueError("Settings: top level must be a mapping")
    return normalize_settings(raw)


def normalize_settings(raw: dict) -> dict:
    """Merge a raw settings dict over DEFAULTS and validate it."""
    unknown = set(raw) - set(DEFAULTS) - {"paths"}
    if unknown:
        raise ValueError(f"Settings: unknown section(s) {sorted(unknown)}")

    config = copy.deepcopy(DEFAULTS)
    for section, values in raw.items():
        if section == "paths":
            continue
        if not isinstance(values, dict):
            raise ValueError(f"Settings: '{section}' must be a mapping")
        extra = set(values) - set(DEFAULTS[section])
        if extra:
            raise ValueError(f"Settings: unknown key(s) in '{section}': {sorted(extra)}")
        config[section].update(values)

    paths = {"tmp": tempfile.gettempdir()}
    paths.update(raw.get("paths") or {})
    config["paths"] = paths

    _validate_video(config["video"])
    _validate_audio(config["audio"])
    _validate_export(config["export"])
    _validate_session(config["session"], paths)
    return config


def _positive_number(section: str, key: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ValueError(f"Settings: {section}.{key} must be > 0, got {value!r}")


def _validate_video(video: dict) -> None:
    size = video["render_size"]
    if not isinstance(size, (list, tuple)) or len(size) != 2:
        raise ValueError(f"Settings: video.render_size must be [width, height], got {size!r}")
    for v in size:
        if isinstance(v, bool) or not isinstance(v, int) or v <= 0:
            raise ValueError(f"Settings: video.render_size values must be positive ints, got {size!r}")
        if v % 2:
            raise ValueError(f"Settings: video.render_size values must be even (yuv420p), got {size!r}")
    video["render_size"] = tuple(size)

    _positive_number("video", "fps", video["fps"])

    crf = video["crf"]
    if isinstance(crf, bool) or not isinstance(crf, int) or not 0 <= crf <= 51:
        raise ValueError(f"Settings: video.crf must be an int in 0..51, got {crf!r}")


def _validate_audio(audio: dict) -> None:
    if audio["policy"] not in AUDIO_POLICIES:
        raise ValueError(
            f"Settings: invalid audio.policy '{audio['policy']}'. "
            f"Valid: {sorted(AUDIO_POLICIES)}"
        )
    _positive_number("audio", "sample_rate", audio["sample_rate"])


def _validate_export(export: dict) -> None:
    container = export["container"]
    if not isinstance(container, str) or not container:
        raise ValueError(f"Settings: export.container must be a file extension, got {container!r}")
    export["container"] = container.lstrip(".")
    _positive_number("export", "checkpoint_interval", export["checkpoint_interval"])
    _positive_number("export", "terminate_timeout", export["terminate_timeout"])


def _validate_session(session: dict, paths: dict) -> None:
    session["scratch_dir"] = resolve_path_vars(str(session["scratch_dir"]), paths)
    session["segment_extension"] = str(session["segment_extension"]).lstrip(".")
    max_duration = session["max_duration"]
    if max_duration is not None:
        _positive_number("session", "max_duration", max_duration)
