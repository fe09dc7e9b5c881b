"""bpm - package resolution, fetch and local cache engine."""

__version__ = "0.1.0"
