from .config import settings
from .errors import ConfigValidationError, PayloadError, RemoteCallError

__all__ = ["settings", "ConfigValidationError", "PayloadError", "RemoteCallError"]
