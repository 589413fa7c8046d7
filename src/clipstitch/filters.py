"""ffmpeg command builder — render a Composition with native ffmpeg.

ffmpeg handles all decoding, filtering, and encoding; no frames pass
through Python. Each layer instruction becomes one per-clip filter
chain, and the chains are joined in clip order with the concat filter,
which places clip i right after clip i-1 (the same offset law the
tracks follow).

Transforms are mapped onto ffmpeg filters, so only axis-aligned
transforms are supported:
  - quarter turns  -> transpose / hflip,vflip, on frames decoded with
                      -noautorotate (rotation tags are ignored)
  - bounding box   -> scale to the mapped size
  - translation    -> pad into the render canvas (skipped when the
                      content already fills it exactly)
"""

from pathlib import Path

from .common import FFMPEG
from .composition import Composition
from .instructions import LayerInstruction
from .tracks import TrackSegment


_TURN_FILTERS = {
    0: [],
    1: ["transpose=1"],
    2: ["hflip", "vflip"],
    3: ["transpose=2"],
}


def _codec_params(codec: str, crf: int, preset: str) -> list[str]:
    """Return ffmpeg video codec arguments for the given codec name."""
    if codec == "h264_nvenc":
        return ["-c:v", codec, "-cq", str(crf), "-pix_fmt", "yuv420p"]
    return ["-c:v", codec, "-preset", preset, "-crf", str(crf), "-pix_fmt", "yuv420p"]


def _even(value: float) -> int:
    """Round to the nearest even pixel count (yuv420p needs even sizes)."""
    return max(2, int(round(value / 2.0)) * 2)


def transform_filters(inst: LayerInstruction, render_size: tuple[int, int]) -> list[str]:
    """Translate an instruction's transform into ffmpeg video filters.

    Raises:
        ValueError: The transform is not axis-aligned, or places content
            outside the render canvas.
    """
    canvas_w, canvas_h = render_size
    turns = inst.transform.quarter_turns()
    x, y, box_w, box_h = inst.transform.bounding_box(*inst.natural_size)
    box_w, box_h = _even(box_w), _even(box_h)
    x, y = int(round(x)), int(round(y))

    if x < 0 or y < 0 or x + box_w > canvas_w or y + box_h > canvas_h:
        raise ValueError(
            f"Transform for {inst.source} places a {box_w}x{box_h} box at "
            f"({x}, {y}), outside the {canvas_w}x{canvas_h} canvas"
        )

    filters = list(_TURN_FILTERS[turns])
    filters.append(f"scale={box_w}:{box_h}")
    if (x, y, box_w, box_h) != (0, 0, canvas_w, canvas_h):
        filters.append(f"pad={canvas_w}:{canvas_h}:{x}:{y}:color=black")
    filters.append("setsar=1")
    return filters


def _video_chain(index: int, inst: LayerInstruction, render_size, fps) -> str:
    parts = [
        f"trim=start=0:duration={inst.duration:.6f}",
        "setpts=PTS-STARTPTS",
        *transform_filters(inst, render_size),
        f"fps={fps}",
        "format=yuv420p",
    ]
    return f"[{index}:v]{','.join(parts)}[v{index}]"


def _audio_chain(index: int, seg: TrackSegment, sample_rate: int) -> str:
    fmt = f"aformat=sample_fmts=fltp:sample_rates={sample_rate}:channel_layouts=stereo"
    if seg.empty:
        return (
            f"anullsrc=r={sample_rate}:cl=stereo,"
            f"atrim=duration={seg.duration:.6f},asetpts=PTS-STARTPTS,{fmt}[a{index}]"
        )
    return (
        f"[{index}:a]atrim=start=0:duration={seg.duration:.6f},"
        f"asetpts=PTS-STARTPTS,aresample={sample_rate},{fmt}[a{index}]"
    )


def build_filter_graph(composition: Composition, sample_rate: int = 44100) -> tuple[str, list[str]]:
    """Build the filter graph for a composition.

    Returns:
        (filter_graph_string, output_labels) where output_labels is
        ["[vout]", "[aout]"] or ["[vout]"] when no clip has audio.
    """
    n = len(composition.instructions)
    with_audio = composition.has_audio
    parts = []
    concat_in = []

    audio_segments = composition.audio_track.segments
    for i, inst in enumerate(composition.instructions):
        parts.append(_video_chain(i, inst, composition.render_size, composition.fps))
        concat_in.append(f"[v{i}]")
        if with_audio:
            parts.append(_audio_chain(i, audio_segments[i], sample_rate))
            concat_in.append(f"[a{i}]")

    if with_audio:
        parts.append(f"{''.join(concat_in)}concat=n={n}:v=1:a=1[vout][aout]")
        return ";".join(parts), ["[vout]", "[aout]"]
    parts.append(f"{''.join(concat_in)}concat=n={n}:v=1:a=0[vout]")
    return ";".join(parts), ["[vout]"]


def build_export_command(
    composition: Composition,
    output_path: str | Path,
    settings: dict,
) -> list[str]:
    """Assemble the full ffmpeg command for exporting a composition.

    Progress is written as key=value lines to stdout (-progress pipe:1);
    stderr carries errors only.
    """
    video = settings["video"]
    audio = settings["audio"]
    export = settings["export"]

    inputs = []
    for inst in composition.instructions:
        inputs.extend(["-noautorotate", "-i", str(inst.source)])

    graph, labels = build_filter_graph(composition, sample_rate=audio["sample_rate"])
    maps = []
    for label in labels:
        maps.extend(["-map", label])

    cmd = [
        FFMPEG, "-y",
        "-hide_banner", "-nostats", "-loglevel", "error",
        "-progress", "pipe:1",
        *inputs,
        "-filter_complex", graph,
        *maps,
        "-t", f"{composition.export_duration:.6f}",
        *_codec_params(video["codec"], video["crf"], video["preset"]),
        "-r", str(composition.fps),
    ]
    if len(labels) > 1:
        cmd.extend(["-c:a", "aac", "-b:a", str(audio["bitrate"])])
    if export["faststart"]:
        cmd.extend(["-movflags", "+faststart"])
    cmd.append(str(output_path))
    return cmd
