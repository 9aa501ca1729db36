from .core import (
    DatabaseSettings,
    LoggingSettings,
    Settings,
    load_settings,
    sanitize_dict,
    _project_root,
    _data_dir,
)
from .protocol_params import ProtocolParams, get_protocol_params

__all__ = [
    "DatabaseSettings",
    "LoggingSettings",
    "Settings",
    "ProtocolParams",
    "get_protocol_params",
    "load_settings",
    "sanitize_dict",
    "_project_root",
    "_data_dir",
]
