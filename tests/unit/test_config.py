"""
Unit tests for EngineConfig.
"""

import pytest

from autorest_engine.config import EngineConfig
from autorest_engine.constants import DEFAULT_API_PREFIX, DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from autorest_engine.exceptions import ConfigurationError

_ENV_VARS = [
    "AUTOREST_CATALOG_URI",
    "AUTOREST_CATALOG_DB",
    "AUTOREST_MANIFEST",
    "AUTOREST_API_PREFIX",
    "AUTOREST_DEFAULT_PAGE_SIZE",
    "AUTOREST_MAX_PAGE_SIZE",
    "AUTOREST_SCHEMA_CACHE_TTL",
    "AUTOREST_POOL_SIZE",
    "AUTOREST_QUERY_TIMEOUT",
    "AUTOREST_MASTER_KEY",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.mark.unit
class TestEngineConfig:
    def test_defaults(self, clean_env):
        config = EngineConfig()
        assert config.catalog_uri == ""
        assert config.uses_mongo_catalog is False
        assert config.catalog_db == "autorest"
        assert config.api_prefix == DEFAULT_API_PREFIX
        assert config.default_page_size == DEFAULT_PAGE_SIZE
        assert config.max_page_size == MAX_PAGE_SIZE
        config.validate()

    def test_environment(self, clean_env):
        clean_env.setenv("AUTOREST_CATALOG_URI", "mongodb://catalog:27017")
        clean_env.setenv("AUTOREST_DEFAULT_PAGE_SIZE", "50")
        clean_env.setenv("AUTOREST_SCHEMA_CACHE_TTL", "0")
        config = EngineConfig()
        assert config.uses_mongo_catalog is True
        assert config.default_page_size == 50
        assert config.schema_cache_ttl == 0

    def test_explicit_values_win(self, clean_env):
        clean_env.setenv("AUTOREST_API_PREFIX", "/env")
        config = EngineConfig(api_prefix="/explicit", schema_cache_ttl=10)
        assert config.api_prefix == "/explicit"
        assert config.schema_cache_ttl == 10

    def test_prefix_must_start_with_slash(self, clean_env):
        with pytest.raises(ConfigurationError, match="api_prefix"):
            EngineConfig(api_prefix="api").validate()

    def test_default_page_size_within_max(self, clean_env):
        with pytest.raises(ConfigurationError) as exc_info:
            EngineConfig(default_page_size=300, max_page_size=200).validate()
        assert exc_info.value.config_key == "AUTOREST_DEFAULT_PAGE_SIZE"

    def test_negative_cache_ttl_rejected(self, clean_env):
        with pytest.raises(ConfigurationError, match="schema_cache_ttl"):
            EngineConfig(schema_cache_ttl=-1).validate()
