# shapetrack

Tools for facial landmark shapes and the data sets they come from.

Shapes are `2 x N` numpy float32 arrays (row 0 holds x, row 1 holds y).
Rectangles are `2 x 4` arrays holding the corners top-left, top-right,
bottom-left, bottom-right. Images are 8-bit numpy arrays.

## Install

```
pip install .
pip install ".[test]"   # with the test requirements
```

## Modules

- `shapetrack.database` loads landmark data sets in the IMM (`.asf`), iBUG
  (`.pts`) and LAND (`.land`) formats with `ShapeDatabase`. It tries its
  loaders (`ImmLoader`, `IBugLoader`, `LandLoader`, and any added with
  `add_loader`) in turn, or uses the one named by `loader_type`. Images are
  read as greyscale from a `.png`, `.jpg`, `.jpeg` or `.bmp` file next to
  each annotation. The settings `max_image_size` and `min_image_size` scale
  images (bicubic) together with their shapes and rectangles. `mirror` adds
  a left-to-right mirrored copy of each entry. `max_elements` caps the number
  of entries, and `rectangles` supplies one rectangle per entry in place of
  the tight shape bounds. `load` returns a `LoadedDatabase` holding images,
  shapes, rects and scale factors. It raises `FileNotFoundError` when no
  entries are found. It raises `ValueError` when the rectangles do not match
  the entries or nothing could be loaded. Progress is reported through the
  `logging` logger `shapetrack.database`.
- `shapetrack.rect_io` writes rectangles with `export_rectangles` and reads
  them with `import_rectangles`. Each rectangle is one line of eight
  space-separated numbers: four x values, then four y values. Reading stops
  at the first empty line.
- `shapetrack.triangulate` gives the Delaunay triangulation of a shape with
  `triangulate_shape`, as flat index triplets. `boundary_shape_vertices`
  returns the boundary vertices of a triangulation, and `boundary_shape`
  returns the matching landmarks.
- `shapetrack.filesearch` provides `find_files_in_dir`. It finds files by
  extension, optionally recursively, and can strip the extension from each
  result.
- `shapetrack.dirlist` lists a directory with `list_dir_sorted`, directories
  first and then by name, including `.` and `..`. It also describes a single
  path with `open_file` and one entry with `read_entry`.
- `shapetrack.geometry` builds rectangles (`create_rectangle`,
  `rect_from_xywh`), converts them back with `rect_to_xywh`, and turns gray or
  BGR 8-bit images into gray ones with `to_gray`.
- `shapetrack.flatbuffer_builder` (`FlatBufferBuilder`, `ScalarType`) writes
  FlatBuffers binary buffers. `shapetrack.flatbuffer_reader` (`get_root`,
  `Table`, `Vector`, `Verifier`) reads and verifies them.

## Examples

Load a data set:

```python
from shapetrack.database import ShapeDatabase

db = ShapeDatabase()
db.mirror = True
result = db.load("data/ibug")
print(result.loader_type, len(result.images), "images loaded")
```

Save rectangles and read them back:

```python
import numpy as np
from shapetrack.geometry import create_rectangle
from shapetrack.rect_io import export_rectangles, import_rectangles

rects = [create_rectangle((0, 0), (10, 20))]
export_rectangles("rects.csv", rects)
assert np.allclose(import_rectangles("rects.csv")[0], rects[0])
```

Triangulate a shape:

```python
import numpy as np
from shapetrack.triangulate import triangulate_shape, boundary_shape_vertices

shape = np.array([[0.0, 2.0, 2.0, 0.0, 1.0],
                  [0.0, 0.0, 2.0, 2.0, 1.0]])
tris = triangulate_shape(shape)
print(boundary_shape_vertices(shape, tris))
```

Build and read a FlatBuffer:

```python
from shapetrack.flatbuffer_builder import FlatBufferBuilder, ScalarType
from shapetrack.flatbuffer_reader import get_root

fbb = FlatBufferBuilder(1024)
start = fbb.start_table()
fbb.add_scalar(4, ScalarType.INT32, 42, 0)
root = fbb.end_table(start, 1)
fbb.finish(root, None)

table = get_root(fbb.output())
print(table.get_field(4, ScalarType.INT32, 0))  # 42
```

Field arguments are vtable offsets. Use
`flatbuffer_builder.field_index_to_offset` to turn a field number into one.

## What it does not do

The package is a library only. It has no command-line program. It does not
detect faces, draw shapes or rectangles on images, or train or run a shape
tracker. It has no schema compiler for FlatBuffers: tables are built and read
field by field.

## Tests

```
pytest
```