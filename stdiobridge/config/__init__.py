from .provider import APIConfig, BackendConfig, ConfigProvider, EnvConfigProvider

__all__ = ["APIConfig", "BackendConfig", "ConfigProvider", "EnvConfigProvider"]
