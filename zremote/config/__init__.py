from .settings import DEFAULT_CONFIG_LOCATIONS, RemoteSettings, get_settings

__all__ = ["DEFAULT_CONFIG_LOCATIONS", "RemoteSettings", "get_settings"]
