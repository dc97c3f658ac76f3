"""highlightsync - Keep a local vault in sync with your highlight exports."""

__version__ = "0.1.0"
