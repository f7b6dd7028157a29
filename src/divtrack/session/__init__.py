"""Session lifecycle management."""

from divtrack.session.manager import SessionManager

__all__ = ["SessionManager"]
