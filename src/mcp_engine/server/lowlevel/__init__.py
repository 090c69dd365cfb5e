from .server import NotificationOptions, Server

__all__ = ["Server", "NotificationOptions"]
