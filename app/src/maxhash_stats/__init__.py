"""HTTP statistics dashboard for a ckpool mining pool."""

__version__ = "0.1.0"
