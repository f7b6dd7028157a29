"""DivTrack - divination card session tracker and pricing cache."""

from divtrack.version import __version__

__all__ = ["__version__"]
