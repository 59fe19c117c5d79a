"""Loading annotated face databases: images with landmark shapes.

Shapes are 2xN float32 arrays (row 0 holds x, row 1 holds y) and
rectangles are 2x4 corner matrices as built by `create_rectangle`. Images
are 8-bit single-channel arrays. Three annotation formats are understood:
IMM (``.asf``), iBUG (``.pts``) and LAND (``.land``).
"""

from __future__ import annotations

import abc
import logging
import os
import re
from collections.abc import Sequence
from dataclasses import dataclass, field

import numpy as np
from PIL import Image

from shapetrack.filesearch import find_files_in_dir
from shapetrack.geometry import create_rectangle, to_gray

log = logging.getLogger(__name__)

_IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".bmp")
_INT_MAX = 2**31 - 1


def _identity_with_swaps(size: int, swaps: Sequence[tuple[int, int]]) -> np.ndarray:
    indices = np.arange(size)
    for a, b in swaps:
        indices[a], indices[b] = indices[b], indices[a]
    return indices


def mirrored_rectangle_permutation() -> np.ndarray:
    """Corner order of a rectangle after mirroring it left to right."""
    return _identity_with_swaps(4, [(0, 1), (2, 3)])


def mirrored_imm_permutation() -> np.ndarray:
    """Landmark order of a mirrored 58-point IMM shape."""
    swaps = [
        # contour
        (0, 12), (1, 11), (2, 10), (3, 9), (4, 8), (5, 7), (6, 6),
        # eyes
        (13, 21), (14, 22), (15, 23), (16, 24), (17, 25), (18, 26), (19, 27), (20, 28),
        # eyebrows
        (29, 34), (30, 35), (31, 36), (32, 37), (33, 38),
        # mouth
        (39, 43), (46, 44), (41, 41), (40, 42), (45, 45),
        # nose
        (47, 57), (48, 56), (49, 55), (50, 54), (51, 53), (52, 52),
    ]
    return _identity_with_swaps(58, swaps)


def mirrored_ibug_permutation() -> np.ndarray:
    """Landmark order of a mirrored 68-point iBUG shape."""
    swaps = [
        # contour
        (0, 16), (1, 15), (2, 14), (3, 13), (4, 12), (5, 11), (6, 10), (7, 9), (8, 8),
        # eyebrows
        (17, 26), (18, 25), (19, 24), (20, 23), (21, 22),
        # nose
        (27, 27), (28, 28), (29, 29), (30, 30),
        (31, 35), (32, 34), (33, 33),
        # eyes
        (39, 42), (38, 43), (37, 44), (36, 45), (40, 47), (41, 46),
        # mouth
        (48, 54), (49, 53), (50, 52), (51, 51),
        (59, 55), (58, 56), (57, 57),
        (60, 64), (61, 63), (62, 62),
        (67, 65), (66, 66),
    ]
    return _identity_with_swaps(68, swaps)


def mirrored_land_permutation() -> np.ndarray:
    """Landmark order of a mirrored 74-point LAND shape."""
    swaps = [
        # contour
        (0, 14), (1, 13), (2, 12), (3, 11), (4, 10), (5, 9), (6, 8), (7, 7),
        # eyebrows
        (15, 21), (16, 22), (17, 23), (18, 24), (19, 25), (20, 26),
        # eyes
        (27, 31), (28, 32), (29, 33), (30, 34), (66, 73), (69, 70), (68, 71), (67, 72),
        # nose
        (35, 43), (36, 42), (37, 41), (38, 40), (39, 39), (44, 45), (65, 65),
        # mouth
        (46, 52), (47, 51), (48, 50), (49, 49),
        (57, 53), (56, 54), (55, 55),
        (58, 60), (59, 59),
        (63, 61), (62, 62),
        (64, 64),
    ]
    return _identity_with_swaps(74, swaps)


def load_image_from_prefix(prefix: str) -> np.ndarray | None:
    """Load a gray image whose path is `prefix` plus a known image extension.

    Returns None when no readable image is found.
    """
    for ext in _IMAGE_EXTENSIONS:
        try:
            with Image.open(prefix + ext) as img:
                return np.array(img.convert("L"), dtype=np.uint8)
        except OSError:
            continue
    return None


def image_scale_factor(size, max_size: int, min_size: int) -> float:
    """Factor bringing an image of `size` (width, height) into size bounds.

    The longer side is shrunk to `max_size`, otherwise the shorter side is
    grown to `min_size`; 1.0 means no scaling is needed.
    """
    width, height = size
    max_len = max(width, height)
    min_len = min(width, height)
    if max_len > max_size:
        return float(np.float32(max_size) / np.float32(max_len))
    if min_len < min_size:
        if min_len <= 0:
            raise ValueError("cannot scale up an image with an empty side")
        return float(np.float32(min_size) / np.float32(min_len))
    return 1.0


def scale_image_shape_and_rect(image, shape, rect, factor: float):
    """Scale image (bicubic), shape and rectangle; returns the three scaled."""
    pixels = np.asarray(image, dtype=np.uint8)
    height, width = pixels.shape[:2]
    new_size = (max(1, round(width * factor)), max(1, round(height * factor)))
    resized = np.array(
        Image.fromarray(pixels).resize(new_size, Image.Resampling.BICUBIC),
        dtype=np.uint8,
    )
    f = np.float32(factor)
    scaled_shape = np.asarray(shape, dtype=np.float32) * f
    scaled_rect = np.asarray(rect, dtype=np.float32) * f
    return resized, scaled_shape, scaled_rect


def _mirror_points(points, last_column: np.float32, permutation) -> np.ndarray:
    mirrored = np.array(points, dtype=np.float32, copy=True)
    perm = np.asarray(permutation)
    if perm.shape != (mirrored.shape[1],):
        raise ValueError(
            f"permutation of size {perm.size} does not fit {mirrored.shape[1]} points"
        )
    mirrored[0] = last_column - mirrored[0]
    return mirrored[:, perm]


def mirror_image_shape_and_rect(image, shape, rect, landmark_permutation, rect_permutation):
    """Mirror image, shape and rectangle left to right; returns the three mirrored."""
    flipped = np.ascontiguousarray(np.asarray(image)[:, ::-1])
    last = np.float32(flipped.shape[1] - 1)
    return (
        flipped,
        _mirror_points(shape, last, landmark_permutation),
        _mirror_points(rect, last, rect_permutation),
    )


def _shape_bounds(shape: np.ndarray) -> np.ndarray:
    mins = shape.min(axis=1)
    maxs = shape.max(axis=1)
    return create_rectangle((mins[0], mins[1]), (maxs[0], maxs[1]))


def _read_pair(line: str) -> tuple[float, float]:
    tokens = line.split()
    if len(tokens) < 2:
        raise ValueError(f"expected two coordinates in {line!r}")
    return float(tokens[0]), float(tokens[1])


def _leading_int(text: str) -> int:
    match = re.match(r"\s*([+-]?\d+)", text)
    return int(match.group(1)) if match else 0


class DatabaseLoader(abc.ABC):
    """Finds and reads the entries of one annotation format."""

    identifier: str = ""
    extension: str = ""

    def __init__(self) -> None:
        self.paths: list[str] = []

    def glob(self, directory) -> int:
        """Find annotated entries below `directory`; returns how many."""
        self.paths = find_files_in_dir(directory, self.extension, True, True)
        return len(self.paths)

    def load_image(self, index: int) -> np.ndarray | None:
        return load_image_from_prefix(self.paths[index])

    def load_shape(self, index: int, image_size) -> np.ndarray | None:
        """Read the shape of entry `index`; None if it cannot be read."""
        path = f"{self.paths[index]}.{self.extension}"
        try:
            with open(path, encoding="utf-8") as handle:
                lines = handle.read().splitlines()
        except OSError:
            return None
        try:
            return self._parse_shape(lines, image_size)
        except ValueError as exc:
            log.info("Failed to read points from %s: %s", path, exc)
            return None

    def shape_mirror_permutation(self) -> np.ndarray:
        """Landmark order after mirroring; empty if mirroring is unsupported."""
        return np.arange(0)

    @abc.abstractmethod
    def _parse_shape(self, lines: list[str], image_size) -> np.ndarray | None:
        """Turn the lines of an annotation file into a shape."""


class ImmLoader(DatabaseLoader):
    """IMM annotations: relative coordinates in ``.asf`` files."""

    identifier = "imm"
    extension = "asf"

    def _parse_shape(self, lines, image_size):
        width, height = image_size
        shape = np.zeros((0, 0), dtype=np.float32)
        count = 0
        for line in lines:
            if not line or line[0] == "#":
                continue
            if ".jpg" in line:
                continue
            if len(line) < 10:
                shape = np.zeros((2, _leading_int(line)), dtype=np.float32)
                continue
            tokens = line.split()
            if len(tokens) < 4:
                raise ValueError(f"malformed point line {line!r}")
            if count >= shape.shape[1]:
                raise ValueError("more points than announced")
            shape[0, count] = float(tokens[2])
            shape[1, count] = float(tokens[3])
            count += 1
        if shape.shape[0] == 0 or shape.shape[1] == 0:
            return None
        shape[0] *= np.float32(width)
        shape[1] *= np.float32(height)
        return shape

    def shape_mirror_permutation(self):
        return mirrored_imm_permutation()


class IBugLoader(DatabaseLoader):
    """iBUG annotations: one-based pixel coordinates in ``.pts`` files."""

    identifier = "ibug"
    extension = "pts"

    def _parse_shape(self, lines, image_size):
        if len(lines) < 2:
            raise ValueError("missing header")
        tokens = lines[1].split()
        if len(tokens) < 2:
            raise ValueError("missing point count")
        num_points = int(tokens[1])
        points = lines[3:3 + max(num_points, 0)]
        if len(points) < num_points:
            raise ValueError("fewer points than announced")
        shape = np.zeros((2, max(num_points, 0)), dtype=np.float32)
        for i, line in enumerate(points):
            x, y = _read_pair(line)
            shape[0, i] = np.float32(x) - np.float32(1)
            shape[1, i] = np.float32(y) - np.float32(1)
        return shape if num_points > 0 else None

    def shape_mirror_permutation(self):
        return mirrored_ibug_permutation()


class LandLoader(DatabaseLoader):
    """LAND annotations: bottom-up pixel coordinates in ``.land`` files."""

    identifier = "land"
    extension = "land"

    def _parse_shape(self, lines, image_size):
        _, height = image_size
        if not lines:
            raise ValueError("missing point count")
        num_points = _leading_int(lines[0])
        points = lines[1:1 + max(num_points, 0)]
        if len(points) < num_points:
            raise ValueError("fewer points than announced")
        shape = np.zeros((2, max(num_points, 0)), dtype=np.float32)
        for i, line in enumerate(points):
            x, y = _read_pair(line)
            shape[0, i] = x
            shape[1, i] = np.float32(height) - np.float32(y) - np.float32(1)
        return shape if num_points > 0 else None

    def shape_mirror_permutation(self):
        return mirrored_land_permutation()


@dataclass
class LoadedDatabase:
    """Entries loaded from a database, in matching order."""

    loader_type: str
    images: list[np.ndarray] = field(default_factory=list)
    shapes: list[np.ndarray] = field(default_factory=list)
    rects: list[np.ndarray] = field(default_factory=list)
    scale_factors: list[float] = field(default_factory=list)


class ShapeDatabase:
    """Loads a database directory with the first loader that finds entries.

    Settings are plain attributes: `mirror`, `max_image_size`,
    `min_image_size`, `max_elements` (None for no limit), `loader_type`
    ("auto" or a loader identifier) and `rectangles` (one per entry, or
    empty to use the tight bounds of each shape).
    """

    def __init__(self) -> None:
        self.loaders: list[DatabaseLoader] = [ImmLoader(), IBugLoader(), LandLoader()]
        self.mirror = False
        self.max_image_size = _INT_MAX
        self.min_image_size = 0
        self.max_elements: int | None = None
        self.loader_type = "auto"
        self.rectangles: list[np.ndarray] = []
        self.last_loader_type = ""

    def add_loader(self, loader: DatabaseLoader) -> None:
        """Add a loader, tried before the ones already present."""
        self.loaders.insert(0, loader)

    def _select_loader(self, directory) -> tuple[DatabaseLoader | None, int]:
        if self.loader_type == "auto":
            loader = None
            candidates = 0
            for loader in self.loaders:
                candidates = loader.glob(directory)
                if candidates > 0:
                    break
            return loader, candidates
        for loader in self.loaders:
            if loader.identifier == self.loader_type:
                return loader, loader.glob(directory)
        return None, 0

    def load(self, directory: str | os.PathLike) -> LoadedDatabase:
        """Load all usable entries found below `directory`.

        Raises FileNotFoundError when no entries are found and ValueError
        when the rectangles do not match the entries or nothing loads.
        """
        loader, candidates = self._select_loader(directory)
        if loader is None or candidates == 0:
            log.info("Could not find any loadable items.")
            raise FileNotFoundError(f"no loadable database entries in {directory}")
        self.last_loader_type = loader.identifier
        log.info(
            "Loading %s database. Found %d candidate entries.",
            loader.identifier,
            candidates,
        )

        loaded_rects = self.rectangles
        if not loaded_rects:
            log.info("No rectangles found, using tight shape bounds.")
        elif candidates != len(loaded_rects):
            log.info("Mismatch between number of shapes in database and rectangles found.")
            raise ValueError(
                f"{len(loaded_rects)} rectangles given for {candidates} database entries"
            )

        perm_shape = np.asarray(loader.shape_mirror_permutation())
        perm_rect = mirrored_rectangle_permutation()
        if perm_shape.size == 0 and self.mirror:
            log.info("Mirroring will be skipped. Requested but database loader does not support it.")

        result = LoadedDatabase(loader_type=loader.identifier)
        if self.max_elements is not None:
            candidates = min(candidates, self.max_elements)

        for i in range(candidates):
            image = loader.load_image(i)
            image_size = (0, 0) if image is None else (image.shape[1], image.shape[0])
            shape = loader.load_shape(i, image_size)
            rect_ok = not loaded_rects or np.any(np.asarray(loaded_rects[i]) != 0)
            if shape is None or image is None or not rect_ok:
                continue

            image = to_gray(image)
            if loaded_rects:
                rect = np.array(loaded_rects[i], dtype=np.float32)
            else:
                rect = _shape_bounds(shape)

            factor = image_scale_factor(image_size, self.max_image_size, self.min_image_size)
            if factor != 1.0:
                image, shape, rect = scale_image_shape_and_rect(image, shape, rect, factor)

            result.images.append(image)
            result.shapes.append(shape)
            result.rects.append(rect)
            result.scale_factors.append(factor)

            if self.mirror and perm_shape.size > 0:
                flipped, m_shape, m_rect = mirror_image_shape_and_rect(
                    image, shape, rect, perm_shape, perm_rect
                )
                result.images.append(flipped)
                result.shapes.append(m_shape)
                result.rects.append(m_rect)
                result.scale_factors.append(factor)

        log.info("Successfully loaded %d entries from database.", len(result.shapes))
        if not result.shapes:
            raise ValueError(f"no database entry in {directory} could be loaded")
        return result