"""CLI for merging recorded segments into one vertical mp4.

Probes every segment, merges them in the order given, forces each clip
into the portrait render canvas, and exports with native ffmpeg while
printing progress. Ctrl-C cancels the export and removes the partial
output. Source segments are never deleted.

Usage:
    clipstitch merge seg-1.mov seg-2.mov seg-3.mov --output final.mp4

    # Custom canvas / encoder settings
    clipstitch merge seg-*.mov --output final.mp4 --config settings.yaml

    # Accept segments recorded without audio (silence fills the gap)
    clipstitch merge a.mov b.mov --output final.mp4 --allow-silent
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .errors import ClipstitchError
from .session import CompositionSession
from .settings import default_settings, load_settings


async def merge(segments: list[str], output_path: str, settings: dict) -> Path:
    """Compose and export segments, printing status as it goes.

    Returns:
        Path of the finished export.
    """
    session = CompositionSession(settings)
    for seg in segments:
        session.add_clip(seg)

    print(f"Probing {len(segments)} segments...")
    composition = await session.build()
    for i, clip in enumerate(composition.clips):
        w, h = clip.natural_size
        print(f"  [{i}] {clip.duration:.1f}s  {w}x{h}  {clip.path}")

    rw, rh = composition.render_size
    print(f"\nMerging {len(composition.clips)} segments into {rw}x{rh}...")
    print(f"Expected duration: ~{composition.duration:.1f}s")
    print(f"Writing to: {output_path}")

    job = await session.export(output_path=output_path)
    last_pct = -1
    async for fraction in job.progress_updates():
        pct = int(fraction * 100)
        if pct // 10 > last_pct // 10 or pct == 100:
            print(f"  {pct:3d}%", flush=True)
        last_pct = pct
    return await job.wait()


def main(args=None):
    parser = argparse.ArgumentParser(
        description="Merge recorded segments into one vertical video.",
    )
    parser.add_argument(
        "segments", nargs="+",
        help="Segment files in timeline order",
    )
    parser.add_argument(
        "--output", required=True,
        help="Output mp4 path",
    )
    parser.add_argument(
        "--config", default=None,
        help="Path to settings YAML (defaults: 1080x1920, 30fps, libx264)",
    )
    parser.add_argument(
        "--allow-silent", action="store_true",
        help="Accept segments without audio (fills them with silence)",
    )
    parser.add_argument(
        "--gpu", action="store_true",
        help="Use GPU encoding (h264_nvenc). Default is CPU (libx264).",
    )
    parser.add_argument(
        "--verbose", action="store_true",
        help="Log probe, merge and export details",
    )
    parsed = parser.parse_args(args)

    if parsed.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

    settings = load_settings(parsed.config) if parsed.config else default_settings()
    if parsed.allow_silent:
        settings["audio"]["policy"] = "tolerate"
    if parsed.gpu:
        settings["video"]["codec"] = "h264_nvenc"

    try:
        output = asyncio.run(merge(parsed.segments, parsed.output, settings))
    except KeyboardInterrupt:
        print("\nCancelled. Partial output removed.")
        sys.exit(130)
    except (ClipstitchError, FileNotFoundError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    print(f"\nDone: {output}")


if __name__ == "__main__":
    main()
