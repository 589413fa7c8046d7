"""CLI for inspecting segments before merging.

Prints duration, stored size, rotation tag and audio presence for each
file, plus the total the merged timeline would have.

Usage:
    clipstitch probe seg-1.mov seg-2.mov
"""

import argparse
import sys

from .clips import probe_clip


def main(args=None):
    parser = argparse.ArgumentParser(
        description="Show segment metadata (duration, size, audio).",
    )
    parser.add_argument("segments", nargs="+", help="Segment files to probe")
    parsed = parser.parse_args(args)

    total = 0.0
    failed = 0
    for i, seg in enumerate(parsed.segments):
        try:
            meta = probe_clip(seg)
        except (OSError, ValueError, KeyError) as exc:
            print(f"  [{i}] FAILED  {seg}: {exc}")
            failed += 1
            continue
        w, h = meta.natural_size
        audio = "audio" if meta.has_audio else "no audio"
        video = f"{w}x{h}" if meta.has_video else "no video"
        rotation = f"  rot {meta.rotation}" if meta.rotation else ""
        print(f"  [{i}] {meta.duration:.2f}s  {video}{rotation}  {audio}  {seg}")
        total += meta.duration

    print(f"Total: {total:.2f}s")
    if failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
