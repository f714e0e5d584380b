"""Client for the ISM7 heating gateway protocol."""

__version__ = "0.1.0"
