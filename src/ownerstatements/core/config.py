#!/usr/bin/env python3
"""
Configuration Management for Owner Statements

Handles environment-based configuration with secure defaults and validation.
Supports multiple environments (development, test, production) with appropriate
security measures for each.
"""

import logging
import os
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Environment(Enum):
    """Application environment types."""

    DEVELOPMENT = "development"
    TEST = "test"
    PRODUCTION = "production"


@dataclass
class DatabaseConfig:
    """Relational datastore settings."""

    url: str
    echo: bool = False


@dataclass
class AIConfig:
    """Document-understanding and text-matching AI settings."""

    api_key: str | None = None
    document_model: str = "gemini-2.5-flash"
    matching_model: str = "gemini-2.5-flash"
    timeout_seconds: float = 60.0
    match_temperature: float = 0.3


@dataclass
class CacheConfig:
    """Key/TTL cache settings (TTL values in seconds)."""

    backend: str = "sql"
    key_prefix: str = "dev"
    month_statements_ttl: int = 300
    existing_expense_ttl: int = 300
    match_ttl: int = 3600


@dataclass
class VendorImportConfig:
    """Vendor expense import pipeline settings."""

    matcher: str = "llm"
    chunk_size: int = 300
    recompute_batch_size: int = 5
    max_rows: int = 1000
    max_file_bytes: int = 10 * 1024 * 1024
    default_expense_day: int = 15
    similarity_threshold: float = 0.5


@dataclass
class Config:
    """
    Main configuration class for the owner statements application.

    Loads configuration from environment variables with secure defaults
    and validation for each environment type.
    """

    environment: Environment

    # Core directories
    data_dir: Path
    output_dir: Path

    # Component configurations
    database: DatabaseConfig
    ai: AIConfig
    cache: CacheConfig
    vendor_import: VendorImportConfig

    # Application settings
    debug: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_environment(cls) -> "Config":
        """Create configuration from environment variables."""
        env = Environment(os.getenv("STATEMENTS_ENV", "development"))

        # Base directories
        if env == Environment.TEST:
            default_test_dir = Path(tempfile.gettempdir()) / "test_ownerstatements"
            base_dir = Path(os.getenv("STATEMENTS_DATA_DIR", str(default_test_dir)))
        else:
            base_dir = Path(os.getenv("STATEMENTS_DATA_DIR", "./data")).expanduser().resolve()

        data_dir = base_dir
        output_dir = data_dir / "vendor_import"

        # Ensure directories exist
        for directory in [data_dir, output_dir]:
            directory.mkdir(parents=True, exist_ok=True)

        database = DatabaseConfig(
            url=os.getenv("DATABASE_URL", f"sqlite+aiosqlite:///{data_dir / 'statements.db'}"),
            echo=os.getenv("DATABASE_ECHO", "false").lower() == "true",
        )

        ai = AIConfig(
            api_key=os.getenv("GEMINI_API_KEY"),
            document_model=os.getenv("AI_DOCUMENT_MODEL", "gemini-2.5-flash"),
            matching_model=os.getenv("AI_MATCHING_MODEL", "gemini-2.5-flash"),
            timeout_seconds=float(os.getenv("AI_TIMEOUT_SECONDS", "60")),
            match_temperature=float(os.getenv("AI_MATCH_TEMPERATURE", "0.3")),
        )

        cache = CacheConfig(
            backend=os.getenv("CACHE_BACKEND", "sql").lower(),
            key_prefix=os.getenv("CACHE_PREFIX", "prod" if env == Environment.PRODUCTION else "dev"),
            month_statements_ttl=int(os.getenv("CACHE_MONTH_STATEMENTS_TTL", "300")),
            existing_expense_ttl=int(os.getenv("CACHE_EXISTING_EXPENSE_TTL", "300")),
            match_ttl=int(os.getenv("CACHE_MATCH_TTL", "3600")),
        )

        vendor_import = VendorImportConfig(
            matcher=os.getenv("VENDOR_IMPORT_MATCHER", "llm").lower(),
            chunk_size=int(os.getenv("VENDOR_IMPORT_CHUNK_SIZE", "300")),
            recompute_batch_size=int(os.getenv("VENDOR_IMPORT_RECOMPUTE_BATCH", "5")),
            max_rows=int(os.getenv("VENDOR_IMPORT_MAX_ROWS", "1000")),
            max_file_bytes=int(os.getenv("VENDOR_IMPORT_MAX_FILE_BYTES", str(10 * 1024 * 1024))),
            default_expense_day=int(os.getenv("VENDOR_IMPORT_DEFAULT_DAY", "15")),
            similarity_threshold=float(os.getenv("VENDOR_IMPORT_SIMILARITY_THRESHOLD", "0.5")),
        )

        return cls(
            environment=env,
            data_dir=data_dir,
            output_dir=output_dir,
            database=database,
            ai=ai,
            cache=cache,
            vendor_import=vendor_import,
            debug=os.getenv("DEBUG", "false").lower() == "true",
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )

    def validate(self) -> list:
        """Validate configuration and return list of errors."""
        errors = []

        # Check required directories
        for name, path in [
            ("data_dir", self.data_dir),
            ("output_dir", self.output_dir),
        ]:
            if not path.exists():
                errors.append(f"{name} does not exist: {path}")

        # The LLM matcher needs credentials in production; elsewhere it falls back
        if (
            self.environment == Environment.PRODUCTION
            and self.vendor_import.matcher == "llm"
            and not self.ai.api_key
        ):
            errors.append("GEMINI_API_KEY is required in production when VENDOR_IMPORT_MATCHER=llm")

        if self.cache.backend not in ("memory", "sql"):
            errors.append(f"CACHE_BACKEND must be 'memory' or 'sql', got '{self.cache.backend}'")
        if self.vendor_import.matcher not in ("llm", "similarity"):
            errors.append(
                f"VENDOR_IMPORT_MATCHER must be 'llm' or 'similarity', got '{self.vendor_import.matcher}'"
            )

        # Validate numeric values
        if self.ai.timeout_seconds <= 0:
            errors.append("AI timeout must be positive")
        if self.vendor_import.chunk_size <= 0:
            errors.append("Vendor import chunk size must be positive")
        if self.vendor_import.recompute_batch_size <= 0:
            errors.append("Vendor import recompute batch size must be positive")
        if not 1 <= self.vendor_import.default_expense_day <= 28:
            errors.append("Default expense day must be 1-28")
        if not 0.0 <= self.vendor_import.similarity_threshold <= 1.0:
            errors.append("Similarity threshold must be within 0-1")
        for ttl_name in ("month_statements_ttl", "existing_expense_ttl", "match_ttl"):
            if getattr(self.cache, ttl_name) <= 0:
                errors.append(f"Cache {ttl_name} must be positive")

        return errors

    def setup_logging(self) -> None:
        """Configure logging based on configuration."""
        level = getattr(logging, self.log_level, logging.INFO)

        # Configure format based on environment
        if self.environment == Environment.DEVELOPMENT:
            format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        else:
            format_str = "%(asctime)s - %(levelname)s - %(message)s"

        logging.basicConfig(level=level, format=format_str, datefmt="%Y-%m-%d %H:%M:%S")

        # Reduce noise from external libraries
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
        if self.environment == Environment.PRODUCTION:
            logging.getLogger("urllib3").setLevel(logging.WARNING)
            logging.getLogger("google").setLevel(logging.WARNING)

    def get_sensitive_fields(self) -> list:
        """Get list of field names that contain sensitive data."""
        return [
            "ai.api_key",
            "database.url",
        ]

    def to_dict(self, include_sensitive: bool = False) -> dict[str, Any]:
        """Convert configuration to dictionary, optionally excluding sensitive data."""
        result: dict[str, Any] = {}

        # Convert dataclass fields to dict
        for field_name, field_value in self.__dict__.items():
            if hasattr(field_value, "__dict__") and not isinstance(field_value, Enum):
                # Nested dataclass
                nested_dict: dict[str, Any] = {}
                for nested_name, nested_value in field_value.__dict__.items():
                    full_field_name = f"{field_name}.{nested_name}"

                    if not include_sensitive and full_field_name in self.get_sensitive_fields():
                        nested_dict[nested_name] = "***REDACTED***"
                    elif isinstance(nested_value, Path):
                        nested_dict[nested_name] = str(nested_value)
                    else:
                        nested_dict[nested_name] = nested_value

                result[field_name] = nested_dict
            elif isinstance(field_value, Path):
                result[field_name] = str(field_value)
            elif isinstance(field_value, Enum):
                result[field_name] = field_value.value
            else:
                result[field_name] = field_value

        return result


# Global configuration instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.from_environment()

        # Validate configuration
        errors = _config.validate()
        if errors:
            raise ValueError(f"Configuration validation failed: {'; '.join(errors)}")

        # Setup logging
        _config.setup_logging()

    return _config


def reload_config() -> Config:
    """Reload configuration from environment (useful for testing)."""
    global _config
    _config = None
    return get_config()

