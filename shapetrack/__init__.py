"""Landmark shape data sets, rectangle files, triangulation and FlatBuffers."""

__version__ = "0.1.0"

__all__ = [
    "database",
    "dirlist",
    "filesearch",
    "flatbuffer_builder",
    "flatbuffer_reader",
    "geometry",
    "rect_io",
    "triangulate",
]