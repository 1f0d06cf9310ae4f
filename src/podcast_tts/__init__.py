"""podcast-tts: bounded-chunk article narration for podcast feeds."""

__all__ = ["__version__"]

__version__ = "0.1.0"
