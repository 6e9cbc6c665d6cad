"""Building blocks for capturing MySQL traffic and replaying it: packet splitting, wire and time formats, TiDB TSO checkpoints, and replay configuration."""

__version__ = "0.1.0"