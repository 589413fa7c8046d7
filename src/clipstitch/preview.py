"""A playable moviepy preview clip for a Composition.

Builds the same timeline the export renders, but as an in-memory
moviepy CompositeVideoClip for review screens and quick checks. Each
layer instruction becomes one source clip that is rotated, resized to
its transformed bounding box, positioned at the transform's offset and
started at the instruction's time. Audio of each source comes along
with its clip.

The caller owns the returned clip and must close() it.
"""

from moviepy import CompositeVideoClip, VideoFileClip

from .composition import Composition


def build_preview_clip(composition: Composition) -> CompositeVideoClip:
    """Compose all instructions into one preview clip.

    Raises:
        ValueError: An instruction's transform is not axis-aligned.
    """
    layers = []
    for inst in composition.instructions:
        turns = inst.transform.quarter_turns()
        x, y, box_w, box_h = inst.transform.bounding_box(*inst.natural_size)

        clip = VideoFileClip(str(inst.source))
        if clip.duration > inst.duration:
            clip = clip.subclipped(0, inst.duration)
        # moviepy decodes upright (tag applied) and rotates counter-clockwise
        # for positive angles: undo the tag, then apply the quarter turns.
        angle = (inst.rotation - 90 * turns) % 360
        if angle:
            clip = clip.rotated(angle)
        clip = (
            clip.resized(new_size=(round(box_w), round(box_h)))
            .with_position((round(x), round(y)))
            .with_start(inst.start)
        )
        if inst.opacity < 1.0:
            clip = clip.with_opacity(inst.opacity)
        layers.append(clip)

    return (
        CompositeVideoClip(layers, size=composition.render_size)
        .with_duration(composition.duration)
        .with_fps(composition.fps)
    )
