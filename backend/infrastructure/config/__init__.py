from .settings import Settings, get_settings, normalize_database_url, settings

__all__ = ["Settings", "get_settings", "normalize_database_url", "settings"]
