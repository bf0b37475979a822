"""
Configuration Management Module
"""
from .settings import (
    Settings,
    LLMSettings,
    StorageSettings,
    CacheSettings,
    RepopulateSettings,
    ServerSettings,
    get_settings,
    get_llm_settings,
    get_server_settings,
)

__all__ = [
    "Settings",
    "LLMSettings",
    "StorageSettings",
    "CacheSettings",
    "RepopulateSettings",
    "ServerSettings",
    "get_settings",
    "get_llm_settings",
    "get_server_settings",
]
