"""homecloud-agent: local synchronization agent for a watched directory."""

__version__ = "0.1.0"
