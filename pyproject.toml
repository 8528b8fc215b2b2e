[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "arenalloc"
version = "0.1.0"
description = "A simulated arena-based memory allocator with best-fit placement, block coalescing and allocation dumps."
requires-python = ">=3.10"
dependencies = []
keywords = ["malloc", "allocator", "arena", "best-fit", "memory", "simulation"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["arenalloc"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
