"""MountPro: offline-first map of mountain bivouacs and water sources."""

__version__ = "1.0.0"
