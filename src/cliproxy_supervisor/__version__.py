"""Version information for cliproxy-supervisor."""

__version__ = "0.3.0"
