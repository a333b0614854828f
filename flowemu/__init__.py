"""Chain-state storage for a local blockchain emulator, in memory, SQLite or Redis."""

__version__ = "0.1.0"