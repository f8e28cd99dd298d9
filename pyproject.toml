[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "oxmem"
version = "0.1.0"
description = "An OmniXtend (TileLink over Ethernet) memory node that serves reads and writes from an in-memory store"
requires-python = ">=3.10"
dependencies = []
keywords = ["omnixtend", "tilelink", "ethernet", "memory", "emulator", "tloe"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Emulators",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
oxmem = "oxmem.node:main"

[tool.hatch.build.targets.wheel]
packages = ["oxmem"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
