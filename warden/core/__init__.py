"""Core module initialization."""

from .config_manager import ConfigManager, WardenConfig, LoggingConfig
from .logging_config import setup_logging, setup_logging_from_config, get_logger
from .resolver import (
    BoundFunctionRef,
    EnvRef,
    FunctionRef,
    Literal,
    parse_descriptor,
    resolve,
)

__all__ = [
    "ConfigManager",
    "WardenConfig",
    "LoggingConfig",
    "setup_logging",
    "setup_logging_from_config",
    "get_logger",
    "BoundFunctionRef",
    "EnvRef",
    "FunctionRef",
    "Literal",
    "parse_descriptor",
    "resolve",
]
