"""Integer bounding boxes for screenshot cropping."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Mapping


@dataclass(frozen=True)
class Box:
    left: int
    top: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.left + self.width

    @property
    def bottom(self) -> int:
        return self.top + self.height

    @classmethod
    def from_bounding_box(cls, bb: Mapping[str, float]) -> "Box":
        """Round a Playwright ``bounding_box()`` outward to whole pixels."""

        return cls(
            left=max(0, math.floor(bb["x"])),
            top=max(0, math.floor(bb["y"])),
            width=math.ceil(bb["width"]),
            height=math.ceil(bb["height"]),
        )

    def relative_to(self, origin: "Box") -> "Box":
        """Express this box in the local coordinate space of ``origin``."""

        return Box(self.left - origin.left, self.top - origin.top, self.width, self.height)

    def translate(self, dx: int, dy: int) -> "Box":
        return Box(self.left + dx, self.top + dy, self.width, self.height)

    def clamp(self, width: int, height: int) -> "Box":
        """Intersect with the ``(0, 0, width, height)`` canvas."""

        left = min(max(0, self.left), width)
        top = min(max(0, self.top), height)
        right = min(max(left, self.right), width)
        bottom = min(max(top, self.bottom), height)
        return Box(left, top, right - left, bottom - top)

    def center(self) -> tuple[float, float]:
        return self.left + self.width / 2, self.top + self.height / 2

    def as_pil(self) -> tuple[int, int, int, int]:
        return self.left, self.top, self.right, self.bottom


def context_box(ad: Box, viewport_width: int, viewport_height: int, margin: int) -> Box:
    """Expand ``ad`` by ``margin`` on each side without leaving the viewport."""

    left = max(ad.left - margin, 0)
    top = max(ad.top - margin, 0)
    right = max(ad.right, min(ad.right + margin, viewport_width))
    bottom = max(ad.bottom, min(ad.bottom + margin, viewport_height))
    return Box(left, top, right - left, bottom - top)


__all__ = ["Box", "context_box"]
