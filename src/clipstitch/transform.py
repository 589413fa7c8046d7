"""Transform calculator — force a clip into the vertical render canvas.

Transforms use the row-vector affine convention common to video
compositors:

    x' = a*x + c*y + tx
    y' = b*x + d*y + ty

with y pointing down. `t1.concat(t2)` applies t1 first, then t2.

The orientation transform for a clip is built in three steps:
  1. Rotate +90 degrees (clockwise on screen, since y points down).
     A landscape source becomes portrait but lands in negative x.
  2. Translate by the source height along x, moving the rotated
     content back into the positive quadrant.
  3. Scale non-uniformly by (target_w / source_h, target_h / source_w)
     so the rotated bounding box exactly fills the target canvas.
     This is scale-to-fill, not letterboxing.
"""

import math
from dataclasses import dataclass

import numpy as np


DEFAULT_RENDER_SIZE = (1080, 1920)


@dataclass(frozen=True)
class AffineTransform:
    a: float = 1.0
    b: float = 0.0
    c: float = 0.0
    d: float = 1.0
    tx: float = 0.0
    ty: float = 0.0

    # ── Constructors ───────────────────────────────────────────────

    @classmethod
    def identity(cls) -> "AffineTransform":
        return cls()

    @classmethod
    def rotation(cls, radians: float) -> "AffineTransform":
        # Snap quarter-turn trig to exact values so corner mapping stays exact.
        cos = _snap(math.cos(radians))
        sin = _snap(math.sin(radians))
        return cls(a=cos, b=sin, c=-sin, d=cos)

    @classmethod
    def translation(cls, tx: float, ty: float) -> "AffineTransform":
        return cls(tx=tx, ty=ty)

    @classmethod
    def scale(cls, sx: float, sy: float) -> "AffineTransform":
        return cls(a=sx, d=sy)

    # ── Composition / application ──────────────────────────────────

    def as_matrix(self) -> np.ndarray:
        """3x3 matrix for row vectors: [x, y, 1] @ M."""
        return np.array([
            [self.a, self.b, 0.0],
            [self.c, self.d, 0.0],
            [self.tx, self.ty, 1.0],
        ])

    @classmethod
    def from_matrix(cls, m: np.ndarray) -> "AffineTransform":
        return cls(
            a=float(m[0, 0]), b=float(m[0, 1]),
            c=float(m[1, 0]), d=float(m[1, 1]),
            tx=float(m[2, 0]), ty=float(m[2, 1]),
        )

    def concat(self, other: "AffineTransform") -> "AffineTransform":
        """Return the transform that applies self, then other."""
        return AffineTransform.from_matrix(self.as_matrix() @ other.as_matrix())

    def apply(self, x: float, y: float) -> tuple[float, float]:
        return (
            self.a * x + self.c * y + self.tx,
            self.b * x + self.d * y + self.ty,
        )

    def map_rect(self, width: float, height: float) -> list[tuple[float, float]]:
        """Map the corners of a (0, 0, width, height) rectangle.

        Order: top-left, top-right, bottom-left, bottom-right of the source.
        """
        corners = [(0, 0), (width, 0), (0, height), (width, height)]
        return [self.apply(x, y) for x, y in corners]

    def bounding_box(self, width: float, height: float) -> tuple[float, float, float, float]:
        """Axis-aligned (x, y, w, h) box covering the mapped rectangle."""
        pts = self.map_rect(width, height)
        xs = [p[0] for p in pts]
        ys = [p[1] for p in pts]
        return min(xs), min(ys), max(xs) - min(xs), max(ys) - min(ys)

    def quarter_turns(self) -> int:
        """Number of clockwise quarter turns in the linear part (0-3).

        Only axis-aligned transforms (rotations by multiples of 90 degrees
        combined with positive scales) can be rendered by the export
        filter graph. Anything else raises ValueError.
        """
        a, b, c, d = (_snap(v) for v in (self.a, self.b, self.c, self.d))
        if b == 0 and c == 0:
            if a > 0 and d > 0:
                return 0
            if a < 0 and d < 0:
                return 2
        elif a == 0 and d == 0:
            if b > 0 and c < 0:
                return 1
            if b < 0 and c > 0:
                return 3
        raise ValueError(f"Transform is not an axis-aligned rotation: {self}")


def _snap(value: float, eps: float = 1e-12) -> float:
    """Round values within eps of -1, 0 or 1 to the exact integer."""
    for target in (-1.0, 0.0, 1.0):
        if abs(value - target) < eps:
            return target
    return value


def force_vertical_transform(
    natural_size: tuple[int, int],
    target_size: tuple[int, int] = DEFAULT_RENDER_SIZE,
) -> AffineTransform:
    """Compute the transform that turns a clip into the vertical canvas.

    Args:
        natural_size: (width, height) of the decoded source frames.
        target_size: (width, height) of the render canvas.

    Returns:
        scale ∘ (rotate ∘ translate) as a single AffineTransform.

    Raises:
        ValueError: If any dimension is zero or negative.
    """
    src_w, src_h = natural_size
    target_w, target_h = target_size
    if src_w <= 0 or src_h <= 0:
        raise ValueError(f"Invalid natural size: {src_w}x{src_h}")
    if target_w <= 0 or target_h <= 0:
        raise ValueError(f"Invalid target size: {target_w}x{target_h}")

    rotate = AffineTransform.rotation(math.pi / 2)
    translate = AffineTransform.translation(src_h, 0)
    scale = AffineTransform.scale(target_w / src_h, target_h / src_w)
    return rotate.concat(translate).concat(scale)
