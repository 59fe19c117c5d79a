[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "shapetrack"
version = "0.1.0"
description = "Face landmark databases, rectangle files, shape triangulation and a FlatBuffers builder and reader"
requires-python = ">=3.10"
keywords = ["landmarks", "shape", "face", "triangulation", "flatbuffers", "dataset"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Scientific/Engineering :: Image Recognition",
]
dependencies = [
    "numpy",
    "pillow",
    "scipy",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["shapetrack"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
