# Core modules

from .config import settings, get_settings, Settings, PaymentModeName

__all__ = ["settings", "get_settings", "Settings", "PaymentModeName"]
