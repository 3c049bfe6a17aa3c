#!/usr/bin/env python3
"""Tests for environment-based configuration."""

import pytest

from ownerstatements.core.config import (
    Config,
    Environment,
    get_config,
    reload_config,
)


class TestConfigFromEnvironment:
    """Test configuration loading."""

    def test_test_environment_defaults(self, tmp_path):
        """Test the test environment settings applied by conftest."""
        config = Config.from_environment()

        assert config.environment == Environment.TEST
        assert config.data_dir == tmp_path / "statements_data"
        assert config.output_dir == config.data_dir / "vendor_import"
        assert config.output_dir.exists()
        assert config.database.url.startswith("sqlite+aiosqlite:///")
        assert config.ai.api_key is None
        assert config.cache.backend == "sql"
        assert config.cache.key_prefix == "dev"
        assert config.vendor_import.matcher == "similarity"
        assert config.vendor_import.chunk_size == 300
        assert config.vendor_import.recompute_batch_size == 5
        assert config.vendor_import.default_expense_day == 15

    def test_overrides(self, monkeypatch):
        """Test numeric and string overrides."""
        monkeypatch.setenv("VENDOR_IMPORT_CHUNK_SIZE", "50")
        monkeypatch.setenv("AI_TIMEOUT_SECONDS", "12.5")
        monkeypatch.setenv("CACHE_BACKEND", "MEMORY")
        monkeypatch.setenv("CACHE_PREFIX", "staging")

        config = Config.from_environment()

        assert config.vendor_import.chunk_size == 50
        assert config.ai.timeout_seconds == 12.5
        assert config.cache.backend == "memory"
        assert config.cache.key_prefix == "staging"

    def test_default_database_lives_in_data_dir(self, monkeypatch):
        """Test the SQLite default when DATABASE_URL is unset."""
        monkeypatch.delenv("DATABASE_URL")
        config = Config.from_environment()
        assert config.database.url == f"sqlite+aiosqlite:///{config.data_dir / 'statements.db'}"


class TestConfigValidation:
    """Test configuration validation."""

    def test_valid_test_config(self):
        """Test the default test configuration validates."""
        assert Config.from_environment().validate() == []

    def test_production_llm_requires_key(self, monkeypatch):
        """Test production refuses the LLM matcher without credentials."""
        monkeypatch.setenv("STATEMENTS_ENV", "production")
        monkeypatch.setenv("VENDOR_IMPORT_MATCHER", "llm")

        errors = Config.from_environment().validate()

        assert any("GEMINI_API_KEY" in error for error in errors)

    def test_production_similarity_needs_no_key(self, monkeypatch):
        """Test production with the similarity matcher."""
        monkeypatch.setenv("STATEMENTS_ENV", "production")
        assert Config.from_environment().validate() == []

    @pytest.mark.parametrize(
        "name,value,fragment",
        [
            ("CACHE_BACKEND", "redis", "CACHE_BACKEND"),
            ("VENDOR_IMPORT_MATCHER", "regex", "VENDOR_IMPORT_MATCHER"),
            ("VENDOR_IMPORT_CHUNK_SIZE", "0", "chunk size"),
            ("VENDOR_IMPORT_DEFAULT_DAY", "31", "Default expense day"),
            ("VENDOR_IMPORT_SIMILARITY_THRESHOLD", "1.5", "Similarity threshold"),
            ("AI_TIMEOUT_SECONDS", "0", "timeout"),
            ("CACHE_MATCH_TTL", "0", "match_ttl"),
        ],
    )
    def test_invalid_values(self, monkeypatch, name, value, fragment):
        """Test each invalid setting is reported."""
        monkeypatch.setenv(name, value)
        errors = Config.from_environment().validate()
        assert any(fragment in error for error in errors)

    def test_get_config_raises_on_invalid(self, monkeypatch):
        """Test the global accessor refuses invalid configuration."""
        monkeypatch.setenv("VENDOR_IMPORT_MATCHER", "regex")
        with pytest.raises(ValueError, match="Configuration validation failed"):
            reload_config()


class TestConfigHelpers:
    """Test global accessors and serialization."""

    def test_test_environment_is_selected(self):
        """Test the autouse fixture selects the test environment."""
        config = get_config()
        assert config.environment == Environment.TEST
        assert config.output_dir.parent == config.data_dir

    def test_get_config_is_cached(self):
        """Test the same instance is returned until reload."""
        assert get_config() is get_config()
        first = get_config()
        assert reload_config() is not first

    def test_to_dict_redacts_secrets(self, monkeypatch):
        """Test sensitive fields are hidden unless requested."""
        monkeypatch.setenv("GEMINI_API_KEY", "secret-key")
        config = Config.from_environment()

        redacted = config.to_dict()
        assert redacted["ai"]["api_key"] == "***REDACTED***"
        assert redacted["database"]["url"] == "***REDACTED***"
        assert redacted["environment"] == "test"
        assert isinstance(redacted["data_dir"], str)

        full = config.to_dict(include_sensitive=True)
        assert full["ai"]["api_key"] == "secret-key"
