"""Instruction assembler -- one timed, transformed layer per clip.

Instruction i starts at the same offset the track builder used for
clip i and lasts exactly the clip's duration, so together the
instructions tile [0, total_duration) with no gaps or overlaps.
Opacity is fixed at 1.0 from each clip's start; there are no
cross-fades.
"""

import math
from dataclasses import dataclass
from pathlib import Path

from .clips import Clip, ClipMetadata
from .transform import AffineTransform, force_vertical_transform


@dataclass(frozen=True)
class LayerInstruction:
    clip_id: str
    source: Path
    start: float
    duration: float
    transform: AffineTransform
    natural_size: tuple[int, int]
    opacity: float = 1.0
    # Source rotation tag (clockwise degrees). Export decodes with it ignored.
    rotation: int = 0

    @property
    def end(self) -> float:
        return self.start + self.duration


def assemble_instructions(
    clips: list[Clip],
    metadata: list[ClipMetadata],
    render_size: tuple[int, int],
) -> tuple[LayerInstruction, ...]:
    """Build one LayerInstruction per clip, in clip order.

    Raises:
        ValueError: A clip has a zero natural size (from the transform).
    """
    instructions = []
    start = 0.0
    for clip, meta in zip(clips, metadata):
        instructions.append(LayerInstruction(
            clip_id=clip.id,
            source=clip.path,
            start=start,
            duration=meta.duration,
            transform=force_vertical_transform(meta.natural_size, render_size),
            natural_size=meta.natural_size,
            rotation=meta.rotation,
        ))
        start += meta.duration
    return tuple(instructions)


def check_tiling(
    instructions: tuple[LayerInstruction, ...] | list[LayerInstruction],
    total_duration: float,
    tolerance: float = 1e-9,
) -> None:
    """Verify instructions cover exactly [0, total_duration).

    Raises:
        ValueError: Empty list, first instruction not at 0, a gap or
            overlap between neighbours, or an end that misses the total.
    """
    if not instructions:
        raise ValueError("No instructions to check")

    cursor = 0.0
    for i, inst in enumerate(instructions):
        if inst.duration <= 0:
            raise ValueError(f"Instruction {i} has non-positive duration {inst.duration}")
        if not math.isclose(inst.start, cursor, rel_tol=0.0, abs_tol=tolerance):
            kind = "gap" if inst.start > cursor else "overlap"
            raise ValueError(
                f"Instruction {i} starts at {inst.start:.6f}s, expected "
                f"{cursor:.6f}s ({kind})"
            )
        cursor = inst.end

    if not math.isclose(cursor, total_duration, rel_tol=0.0, abs_tol=tolerance):
        raise ValueError(
            f"Instructions end at {cursor:.6f}s, composition lasts {total_duration:.6f}s"
        )


def tiles(instructions, total_duration: float, tolerance: float = 1e-9) -> bool:
    """Boolean form of check_tiling."""
    try:
        check_tiling(instructions, total_duration, tolerance)
    except ValueError:
        return False
    return True
