#!/usr/bin/env python3
"""Generate synthetic phone-style segments for trying out clipstitch.

Creates a handful of short segments in examples/demo-segments/ with the
shapes a camera app hands over: portrait, landscape, and a landscape
file carrying a 90 degree rotation tag. Each segment is a solid color
with a sine tone, so ordering and audio alignment are easy to check in
the merged output.

Usage:
    python examples/generate_demo_segments.py
    # Then merge:
    clipstitch merge examples/demo-segments/*.mov --output examples/merged.mp4
"""

import subprocess
from pathlib import Path

import imageio_ffmpeg
import numpy as np
from moviepy import AudioClip, ColorClip

OUTPUT_DIR = Path(__file__).resolve().parent / "demo-segments"
FPS = 30

# (name, size, color, duration, tone Hz, rotation tag)
SEGMENTS = [
    ("seg-01", (720, 1280), (180, 60, 60),  2.0, 440, 0),   # portrait, red
    ("seg-02", (1280, 720), (60, 60, 180),  3.0, 550, 0),   # landscape, blue
    ("seg-03", (1280, 720), (60, 160, 60),  2.5, 660, 90),  # tagged, green
    ("seg-04", (720, 1280), (200, 130, 40), 1.5, 770, 0),   # portrait, orange
]


def _tone(freq: float, duration: float) -> AudioClip:
    def frame(t):
        wave = 0.2 * np.sin(2 * np.pi * freq * np.asarray(t))
        return np.stack([wave, wave], axis=-1)
    return AudioClip(frame, duration=duration, fps=44100)


def _tag_rotation(src: Path, dst: Path, degrees: int) -> None:
    """Copy streams into dst with a display rotation tag."""
    cmd = [
        imageio_ffmpeg.get_ffmpeg_exe(), "-y", "-loglevel", "error",
        "-display_rotation:v:0", str(degrees),
        "-i", str(src), "-c", "copy", str(dst),
    ]
    subprocess.run(cmd, check=True)


def main():
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    for name, size, color, duration, freq, rotation in SEGMENTS:
        out = OUTPUT_DIR / f"{name}.mov"
        if out.exists():
            print(f"  skip {name} (exists)")
            continue

        clip = ColorClip(size=size, color=color, duration=duration)
        clip = clip.with_audio(_tone(freq, duration))
        target = OUTPUT_DIR / f"{name}.raw.mov" if rotation else out
        clip.write_videofile(
            str(target), fps=FPS, codec="libx264", audio_codec="aac", logger=None,
        )
        if rotation:
            _tag_rotation(target, out, rotation)
            target.unlink()
        print(f"  wrote {name} ({duration}s, {size[0]}x{size[1]}, rot {rotation})")

    print(f"\nDone. {len(SEGMENTS)} segments in {OUTPUT_DIR}")


if __name__ == "__main__":
    main()
