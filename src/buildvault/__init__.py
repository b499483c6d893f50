"""buildvault - manage a local library of versioned builds fetched from remote repositories."""

__version__ = "0.3.0"
