"""
Configuration Management Module
Environment-driven settings for the digest engine
"""
from .settings import (
    GeneralSettings,
    LLMSettings,
    PipelineSettings,
    SchedulerSettings,
    Settings,
    StorageSettings,
    get_general_settings,
    get_llm_settings,
    get_pipeline_settings,
    get_scheduler_settings,
    get_settings,
    get_storage_settings,
)

__all__ = [
    "GeneralSettings",
    "LLMSettings",
    "PipelineSettings",
    "SchedulerSettings",
    "Settings",
    "StorageSettings",
    "get_general_settings",
    "get_llm_settings",
    "get_pipeline_settings",
    "get_scheduler_settings",
    "get_settings",
    "get_storage_settings",
]
