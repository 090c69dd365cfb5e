from .lowlevel import NotificationOptions, Server
from .models import InitializationOptions

__all__: list[str] = [
    "Server",
    "NotificationOptions",
    "InitializationOptions",
]
