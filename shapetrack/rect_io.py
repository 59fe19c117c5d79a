"""Reading and writing rectangles as lines of space-separated numbers.

Each line holds the eight coordinates of one rectangle: the four x values
followed by the four y values. Reading stops at the first empty line.
"""

from __future__ import annotations

import os

import numpy as np

_VALUES_PER_RECT = 8


def import_rectangles(path: str | os.PathLike) -> list[np.ndarray]:
    """Read rectangles from a file; raises OSError if it cannot be opened."""
    rects: list[np.ndarray] = []
    with open(path, encoding="utf-8") as handle:
        for number, line in enumerate(handle, start=1):
            line = line.rstrip("\n")
            if not line:
                break
            fields = line.split()
            if len(fields) < _VALUES_PER_RECT:
                raise ValueError(
                    f"line {number}: expected {_VALUES_PER_RECT} values, got {len(fields)}"
                )
            try:
                values = [float(field) for field in fields[:_VALUES_PER_RECT]]
            except ValueError as exc:
                raise ValueError(f"line {number}: {exc}") from exc
            rects.append(np.array(values, dtype=np.float32).reshape(2, 4))
    return rects


def export_rectangles(path: str | os.PathLike, rects) -> None:
    """Write rectangles, one per line; raises OSError if the file cannot be written."""
    with open(path, "w", encoding="utf-8") as handle:
        for rect in rects:
            corners = np.asarray(rect, dtype=np.float32)
            if corners.shape != (2, 4):
                raise ValueError(
                    f"a rectangle is a 2x4 matrix, got shape {corners.shape}"
                )
            handle.write(" ".join(f"{float(v):g}" for v in corners.reshape(-1)))
            handle.write("\n")