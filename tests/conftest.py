"""Shared test fixtures for clipstitch tests."""

import asyncio
import subprocess
from pathlib import Path

import pytest
import imageio_ffmpeg

from clipstitch.clips import ClipMetadata
from clipstitch.settings import normalize_settings

_FFMPEG = imageio_ffmpeg.get_ffmpeg_exe()


def _meta(duration, size=(1920, 1080), video=True, audio=True):
    return ClipMetadata(
        duration=duration, natural_size=size, has_video=video, has_audio=audio,
    )


@pytest.fixture
def make_clip(tmp_path):
    """Factory: synthesize a short clip (solid color, optional silent audio).

    bottom_color paints the lower half of the stored frame, so orientation
    can be checked by pixel. display_rotation tags the container with a
    counter-clockwise display rotation in degrees, as phone cameras do.

    Usage: make_clip("a.mp4", duration=3, size=(320, 240), audio=True)
    """
    def _make(name, duration=2.0, size=(320, 240), audio=True, color="blue",
              bottom_color=None, display_rotation=0):
        out = tmp_path / name
        raw = tmp_path / f"raw-{name}" if display_rotation else out
        source = f"color=c={color}:s={size[0]}x{size[1]}:r=10"
        if bottom_color:
            source += (
                f",drawbox=x=0:y={size[1] // 2}:w={size[0]}:h={size[1] // 2}"
                f":color={bottom_color}:t=fill"
            )
        cmd = [_FFMPEG, "-y", "-f", "lavfi", "-i", source]
        if audio:
            cmd += ["-f", "lavfi", "-i", "anullsrc=r=44100:cl=mono"]
        cmd += [
            "-t", str(duration),
            "-c:v", "libx264", "-crf", "28", "-pix_fmt", "yuv420p",
        ]
        if audio:
            cmd += ["-c:a", "aac", "-b:a", "32k"]
        cmd.append(str(raw))
        subprocess.run(cmd, check=True, capture_output=True)

        if display_rotation:
            subprocess.run([
                _FFMPEG, "-y", "-display_rotation:v:0", str(display_rotation),
                "-i", str(raw), "-c", "copy", str(out),
            ], check=True, capture_output=True)
            raw.unlink()
        return out
    return _make


@pytest.fixture
def fake_probe():
    """Factory: build a probe that answers from a {filename: ClipMetadata} table."""
    def _build(table):
        def probe(path):
            return table[Path(path).name]
        return probe
    return _build


@pytest.fixture
def meta():
    """ClipMetadata builder with landscape 1080p defaults."""
    return _meta


@pytest.fixture
def small_settings(tmp_path):
    """Settings with a small canvas and a fast preset, scratch in tmp_path."""
    return normalize_settings({
        "video": {"render_size": [180, 320], "preset": "ultrafast", "crf": 30},
        "export": {"checkpoint_interval": 0.05},
        "session": {"scratch_dir": str(tmp_path / "scratch")},
    })


class FakeProcess:
    """Stands in for an ffmpeg subprocess: writes a file, emits progress lines."""

    def __init__(self, output_path, lines, returncode=0, stderr=b"", hang=False,
                 write_output=True, delay=0.01):
        self.output_path = Path(output_path)
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        self.returncode = None
        self.terminated = False
        self._lines = lines
        self._final_code = returncode
        self._stderr_data = stderr
        self._hang = hang
        self._write_output = write_output
        self._delay = delay
        self._exited = asyncio.Event()
        self._task = asyncio.create_task(self._produce())

    async def _produce(self):
        self.output_path.write_bytes(b"partial")
        for line in self._lines:
            if self.returncode is not None:
                return
            self.stdout.feed_data(line.encode() + b"\n")
            await asyncio.sleep(self._delay)
        if self.returncode is not None:
            return
        if self._hang:
            await self._exited.wait()
            return
        if self._write_output:
            self.output_path.write_bytes(b"finished movie data")
        else:
            self.output_path.unlink()
        self._exit(self._final_code)

    def _exit(self, code):
        if self.returncode is not None:
            return
        self.returncode = code
        self.stderr.feed_data(self._stderr_data)
        self.stdout.feed_eof()
        self.stderr.feed_eof()
        self._exited.set()

    async def wait(self):
        await self._exited.wait()
        return self.returncode

    def terminate(self):
        self.terminated = True
        self._exit(-15)

    def kill(self):
        self._exit(-9)


@pytest.fixture
def fake_spawn():
    """Factory: a fake ffmpeg spawner; spawned processes collect in .procs.

    Usage: spawn = fake_spawn(lines=[...], returncode=0, hang=False)
    """
    def _build(**kwargs):
        async def spawn(*cmd, **_):
            proc = FakeProcess(cmd[-1], **kwargs)
            spawn.procs.append(proc)
            return proc
        spawn.procs = []
        return spawn
    return _build
