"""
Configuration management for Warden.

Handles loading, validation, and access to token engine settings.
"""

import os
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, List
from enum import Enum

import yaml
from jwt.algorithms import get_default_algorithms
from pydantic import BaseModel, Field, field_validator, ValidationError, ConfigDict

from warden.core.resolver import describe, parse_descriptor

logger = logging.getLogger(__name__)

DEFAULT_TTL = (4, "weeks")


class LogLevel(str, Enum):
    """Valid log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: LogLevel = LogLevel.INFO
    format: str = "json"
    file: Optional[str] = None
    rotation_size: str = "10MB"
    rotation_count: int = 5
    module_levels: Optional[Dict[str, str]] = Field(
        default=None,
        description="Per-module log levels, e.g., {'warden.tokens.keys': 'DEBUG'}"
    )

    model_config = ConfigDict(use_enum_values=True)


class WardenConfig(BaseModel):
    """Main Warden configuration schema."""

    issuer: str = Field(description="Value written to and checked against the iss claim")

    secret_key: Any = Field(
        description="Secret descriptor: key material, env/function reference, or a list of them"
    )

    allowed_algos: List[str] = Field(default_factory=lambda: ["HS512"])

    ttl: Any = Field(
        default=DEFAULT_TTL,
        description="Default TTL: seconds or a [count, unit] pair"
    )

    token_ttl: Dict[str, Any] = Field(
        default_factory=dict,
        description="Per token type TTL overrides, e.g. {'refresh': [30, 'days']}"
    )

    default_token_type: str = "access"

    allowed_drift: float = Field(
        default=0.0,
        ge=0.0,
        description="Clock drift tolerated by time based claims, in seconds"
    )

    verify_issuer: bool = False

    trusted_key_urls: List[str] = Field(
        default_factory=list,
        description="Origins a token's jku header may point at"
    )

    key_fetch_timeout: float = Field(default=5.0, gt=0.0)

    serializer: Optional[str] = Field(
        default=None,
        description="Import path of the resource serializer class"
    )

    hooks: Optional[str] = Field(
        default=None,
        description="Import path of the hooks class"
    )

    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("issuer")
    @classmethod
    def validate_issuer(cls, v: str) -> str:
        """Reject an empty issuer."""
        if not v.strip():
            raise ValueError("issuer must not be empty")
        return v

    @field_validator("secret_key", mode="before")
    @classmethod
    def validate_secret_key(cls, v: Any) -> Any:
        """Turn file-form descriptors into descriptor variants."""
        if v is None or (isinstance(v, (str, bytes, list, tuple)) and len(v) == 0):
            raise ValueError("secret_key is required")
        if isinstance(v, (list, tuple)):
            return [parse_descriptor(item) for item in v]
        return parse_descriptor(v)

    @field_validator("ttl", mode="before")
    @classmethod
    def validate_ttl(cls, v: Any) -> Any:
        """Accept TTL descriptors given in file form."""
        return parse_descriptor(v)

    @field_validator("token_ttl", mode="before")
    @classmethod
    def validate_token_ttl(cls, v: Any) -> Any:
        """Accept TTL descriptors given in file form."""
        if isinstance(v, dict):
            return {str(k): parse_descriptor(ttl) for k, ttl in v.items()}
        return v

    @field_validator("allowed_algos")
    @classmethod
    def validate_allowed_algos(cls, v: List[str]) -> List[str]:
        """Validate every algorithm is one PyJWT can sign and verify with."""
        if not v:
            raise ValueError("allowed_algos must list at least one algorithm")
        known = set(get_default_algorithms()) - {"none"}
        unknown = [alg for alg in v if alg not in known]
        if unknown:
            raise ValueError(f"Unsupported algorithms: {', '.join(unknown)}")
        return v

    @field_validator("trusted_key_urls")
    @classmethod
    def validate_trusted_key_urls(cls, v: List[str]) -> List[str]:
        """Trusted key URLs must be absolute http(s) URLs."""
        for url in v:
            if not url.startswith(("https://", "http://")):
                raise ValueError(f"Trusted key URL must be http(s): {url}")
        return v

    def ttl_for(self, token_type: Optional[str]) -> Any:
        """Return the TTL descriptor configured for a token type."""
        if token_type is not None and token_type in self.token_ttl:
            return self.token_ttl[token_type]
        return self.ttl

    model_config = ConfigDict(arbitrary_types_allowed=True)


class ConfigManager:
    """
    Manages Warden configuration loading and validation.

    Configuration precedence (highest to lowest):
    1. Explicit overrides
    2. Environment variables (WARDEN_*)
    3. Configuration file (YAML/JSON)
    4. Defaults
    """

    def __init__(self):
        self._config: Optional[WardenConfig] = None
        self._config_file: Optional[Path] = None

    def load(
        self,
        config_file: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None
    ) -> WardenConfig:
        """
        Load and validate configuration from multiple sources.

        Args:
            config_file: Path to configuration file (YAML or JSON)
            overrides: Dictionary of explicit overrides

        Returns:
            Validated WardenConfig instance

        Raises:
            ValidationError: If configuration is invalid or incomplete
            FileNotFoundError: If specified config file doesn't exist
        """
        logger.info("Loading Warden configuration")

        config_dict: Dict[str, Any] = {}

        if config_file:
            config_dict = self._load_from_file(config_file)
            self._config_file = Path(config_file)
            logger.info(f"Loaded configuration from file: {config_file}")

        env_config = self._load_from_env()
        config_dict = self._merge_configs(config_dict, env_config)
        if env_config:
            logger.info(f"Applied {len(env_config)} environment variable overrides")

        if overrides:
            config_dict = self._merge_configs(config_dict, overrides)
            logger.info(f"Applied {len(overrides)} explicit overrides")

        try:
            self._config = WardenConfig(**config_dict)
            logger.info("Configuration validated successfully")
            self._log_configuration()
            return self._config
        except ValidationError as e:
            logger.error(f"Configuration validation failed: {e}")
            raise

    def _load_from_file(self, file_path: str) -> Dict[str, Any]:
        """Load configuration from YAML or JSON file."""
        path = Path(file_path)

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {file_path}")

        with open(path, 'r') as f:
            if path.suffix in ['.yaml', '.yml']:
                return yaml.safe_load(f) or {}
            elif path.suffix == '.json':
                return json.load(f)
            else:
                raise ValueError(f"Unsupported config file format: {path.suffix}")

    def _load_from_env(self) -> Dict[str, Any]:
        """Load configuration from environment variables."""
        config: Dict[str, Any] = {}

        if issuer := os.getenv("WARDEN_ISSUER"):
            config["issuer"] = issuer
        if secret_key := os.getenv("WARDEN_SECRET_KEY"):
            config["secret_key"] = secret_key
        if algos := os.getenv("WARDEN_ALLOWED_ALGOS"):
            config["allowed_algos"] = [a.strip() for a in algos.split(",") if a.strip()]
        if verify_issuer := os.getenv("WARDEN_VERIFY_ISSUER"):
            config["verify_issuer"] = verify_issuer.lower() in ['true', '1', 'yes']
        if drift := os.getenv("WARDEN_ALLOWED_DRIFT"):
            config["allowed_drift"] = float(drift)

        if log_level := os.getenv("WARDEN_LOG_LEVEL"):
            config.setdefault("logging", {})["level"] = log_level.upper()
        if log_file := os.getenv("WARDEN_LOG_FILE"):
            config.setdefault("logging", {})["file"] = log_file

        return config

    def _merge_configs(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two configuration dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value

        return result

    def _log_configuration(self) -> None:
        """Log the loaded configuration (with secret material redacted)."""
        if not self._config:
            return

        config_dict = self._config.model_dump(exclude={"secret_key"})
        config_dict["secret_key"] = describe(self._config.secret_key)

        logger.info(f"Active configuration: {json.dumps(config_dict, indent=2, default=str)}")

    def get_config(self) -> WardenConfig:
        """
        Get the loaded configuration.

        Returns:
            WardenConfig instance

        Raises:
            RuntimeError: If configuration hasn't been loaded
        """
        if self._config is None:
            raise RuntimeError("Configuration not loaded. Call load() first.")
        return self._config

    def reload(self) -> WardenConfig:
        """
        Reload configuration from the same sources.

        Returns:
            Reloaded WardenConfig instance
        """
        config_file = str(self._config_file) if self._config_file else None
        return self.load(config_file=config_file)
