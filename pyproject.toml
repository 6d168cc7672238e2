[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "appmake"
version = "0.1.0"
description = "Application generator that packages linked Z80 binaries into Laser 350/500/700 cassette images and WAV audio"
requires-python = ">=3.10"
dependencies = []
keywords = ["z80", "laser", "vz", "cassette", "cas", "wav", "retrocomputing", "intel-hex"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Build Tools",
    "Topic :: System :: Emulators",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
appmake = "appmake.cli:main"
laser2cas = "appmake.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["appmake"]

[tool.pytest.ini_options]
addopts = "-ra"
