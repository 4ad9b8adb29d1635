"""ByteHub: GitHub event routing and project governance for Discord."""

__version__ = "0.1.0"
