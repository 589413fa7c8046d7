"""Tests for the instruction assembler and the tiling check."""

from dataclasses import replace
from pathlib import Path

import pytest

from clipstitch.clips import Clip
from clipstitch.instructions import assemble_instructions, check_tiling, tiles
from clipstitch.transform import force_vertical_transform


def _clips(n):
    return [Clip(id=f"c{i}", path=Path(f"/tmp/seg-{i}.mov")) for i in range(n)]


class TestAssembleInstructions:
    def test_one_instruction_per_clip_in_order(self, meta):
        clips = _clips(3)
        insts = assemble_instructions(clips, [meta(1.0), meta(2.0), meta(3.0)], (1080, 1920))
        assert [i.clip_id for i in insts] == ["c0", "c1", "c2"]
        assert [i.start for i in insts] == [0.0, 1.0, 3.0]
        assert [i.duration for i in insts] == [1.0, 2.0, 3.0]

    def test_start_is_sum_of_previous_durations(self, meta):
        durations = [0.7, 1.3, 2.9, 0.04]
        insts = assemble_instructions(_clips(4), [meta(d) for d in durations], (1080, 1920))
        for i, inst in enumerate(insts):
            assert inst.start == pytest.approx(sum(durations[:i]), abs=1e-12)

    def test_transform_uses_natural_size(self, meta):
        insts = assemble_instructions(
            _clips(2), [meta(1.0, size=(1920, 1080)), meta(1.0, size=(640, 480))], (1080, 1920),
        )
        assert insts[0].transform == force_vertical_transform((1920, 1080), (1080, 1920))
        assert insts[1].transform == force_vertical_transform((640, 480), (1080, 1920))

    def test_rotation_tag_carried_but_not_applied(self, meta):
        tagged = replace(meta(1.0, size=(1920, 1080)), rotation=90)
        insts = assemble_instructions(_clips(1), [tagged], (1080, 1920))
        assert insts[0].rotation == 90
        assert insts[0].natural_size == (1920, 1080)
        assert insts[0].transform == force_vertical_transform((1920, 1080), (1080, 1920))

    def test_full_opacity(self, meta):
        insts = assemble_instructions(_clips(2), [meta(1.0), meta(1.0)], (1080, 1920))
        assert all(i.opacity == 1.0 for i in insts)

    def test_tiles_total_duration(self, meta):
        durations = [3.0, 5.0, 0.5]
        insts = assemble_instructions(_clips(3), [meta(d) for d in durations], (1080, 1920))
        check_tiling(insts, sum(durations))
        assert tiles(insts, sum(durations))


class TestCheckTiling:
    def _insts(self, meta):
        return assemble_instructions(_clips(3), [meta(1.0), meta(2.0), meta(3.0)], (1080, 1920))

    def test_gap_detected(self, meta):
        insts = list(self._insts(meta))
        insts[1] = replace(insts[1], start=1.5)
        with pytest.raises(ValueError, match="gap"):
            check_tiling(insts, 6.0)

    def test_overlap_detected(self, meta):
        insts = list(self._insts(meta))
        insts[2] = replace(insts[2], start=2.5)
        with pytest.raises(ValueError, match="overlap"):
            check_tiling(insts, 6.0)

    def test_wrong_total_detected(self, meta):
        assert not tiles(self._insts(meta), 7.0)

    def test_must_start_at_zero(self, meta):
        insts = list(self._insts(meta))
        insts[0] = replace(insts[0], start=0.2, duration=0.8)
        assert not tiles(insts, 6.0)

    def test_empty_rejected(self):
        with pytest.raises(ValueError, match="No instructions"):
            check_tiling([], 0.0)
