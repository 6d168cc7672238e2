"""Package linked Z80 binaries into Laser cassette images, WAV audio and banked binaries."""

__version__ = "0.1.0"