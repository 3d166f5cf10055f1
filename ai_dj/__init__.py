"""AI DJ: keeps remote playback in line with a natural-language music schedule."""

__version__ = "0.1.0"
