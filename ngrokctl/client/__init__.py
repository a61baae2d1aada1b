"""ngrokctl client module."""

from .builder import NgrokBuilder
from .session import Ngrok, Tunnel

__all__ = ["NgrokBuilder", "Ngrok", "Tunnel"]
