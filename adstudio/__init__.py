"""Ad Studio - version streams and mixer timeline for audio ads."""

__version__ = "0.1.0"
