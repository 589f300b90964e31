"""Turn video URLs into podcast episodes with live conversion progress."""

__all__ = ["__version__"]
__version__ = "0.1.0"
