"""Fill session controller for a shared pair of water-filling stations."""

__version__ = "0.3.0"
