#!/usr/bin/env python3
"""
Unit tests for configuration loading
"""
import pytest
from pathlib import Path
import sys

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from irysdune.shared.config import AppConfig, ConfigError, apply_overrides, load_config

REPO_CONFIG = Path(__file__).parent.parent / "config" / "irysdune.yaml"


def write_yaml(tmp_path: Path, content: str) -> Path:
    p = tmp_path / "irysdune.yaml"
    p.write_text(content, encoding="utf-8")
    return p


class TestDefaults:
    """Test built-in defaults"""

    def test_defaults_without_file(self):
        cfg = load_config(None, environ={})
        assert cfg.scheduler.delay_ms == 300
        assert cfg.cache.onchain_ttl_seconds == 600
        assert cfg.cache.dashboard_ttl_seconds == 1800
        assert cfg.tag_query.drop_out_of_range_samples is True
        assert cfg.resolver.trend_wait_seconds == 5.0

    def test_block_times(self):
        cfg = AppConfig()
        assert cfg.block_time("mainnet") == 12
        assert cfg.block_time("arbitrum") == 0.25
        assert cfg.block_time("Irys-Testnet") == 2
        assert cfg.block_time("unknown-chain") == 12
        assert cfg.rpc_url("unknown-chain") is None


class TestLoadConfig:
    """Test YAML loading and validation"""

    def test_repository_config_loads(self):
        cfg = load_config(str(REPO_CONFIG), environ={})
        assert cfg.endpoints.graphql_url == "https://uploader.irys.xyz/graphql"
        assert cfg.snapshots.projects["irys-names"] == "EyVYXjojk7fygA56Gu3Ndcj6ueYqH1dXCfVBwRU52fgF"
        assert "irys-names" in cfg.snapshots.cumulative_projects
        assert cfg.rpc_url("irys-testnet") == "https://testnet-rpc.irys.xyz/v1/execution-rpc"

    def test_partial_yaml_keeps_defaults(self, tmp_path):
        path = write_yaml(tmp_path, """
scheduler:
  delay_ms: 50
networks:
  base:
    rpc_url: "https://base.example"
logging:
  level: debug
""")
        cfg = load_config(str(path), environ={})
        assert cfg.scheduler.delay_ms == 50
        assert cfg.rpc_url("base") == "https://base.example"
        assert cfg.block_time("base") == 2
        assert cfg.block_time("mainnet") == 12
        assert cfg.logging_level == "DEBUG"
        assert cfg.http.retry_attempts == 3

    def test_empty_file_gives_defaults(self, tmp_path):
        cfg = load_config(str(write_yaml(tmp_path, "")), environ={})
        assert cfg.tag_query.page_size == 100

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(str(tmp_path / "missing.yaml"))

    def test_invalid_yaml(self, tmp_path):
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(str(write_yaml(tmp_path, "scheduler: [unclosed")))

    def test_invalid_values(self, tmp_path):
        with pytest.raises(ConfigError, match="validation failed"):
            load_config(str(write_yaml(tmp_path, "tag_query:\n  page_size: 500\n")), environ={})
        with pytest.raises(ConfigError):
            load_config(str(write_yaml(tmp_path, "networks:\n  fast:\n    block_time_seconds: 0\n")), environ={})

    def test_section_must_be_mapping(self, tmp_path):
        with pytest.raises(ConfigError, match="must be a mapping"):
            load_config(str(write_yaml(tmp_path, "cache: 5\n")), environ={})


class TestOverrides:
    """Test environment and CLI overrides"""

    def test_environment_overrides(self):
        env = {
            "IRYSDUNE_GRAPHQL_URL": "https://graphql.example",
            "IRYSDUNE_GATEWAY_URL": "https://gateway.example/",
            "IRYSDUNE_RPC_IRYS_TESTNET": "https://rpc.example",
            "IRYSDUNE_RPC_SEPOLIA": "https://sepolia.example",
        }
        cfg = load_config(None, environ=env)
        assert cfg.endpoints.graphql_url == "https://graphql.example"
        assert cfg.endpoints.gateway_url == "https://gateway.example"
        assert cfg.rpc_url("irys-testnet") == "https://rpc.example"
        assert cfg.rpc_url("sepolia") == "https://sepolia.example"
        assert cfg.block_time("sepolia") == 12

    def test_apply_overrides_returns_copy(self):
        cfg = AppConfig()
        updated = apply_overrides(cfg, log_level="debug", default_months=3, scheduler_delay_ms=0)
        assert updated.logging_level == "DEBUG"
        assert updated.tag_query.default_months == 3
        assert updated.scheduler.delay_ms == 0
        assert cfg.logging_level == "INFO"

    def test_apply_overrides_rejects_invalid(self):
        with pytest.raises(ConfigError):
            apply_overrides(AppConfig(), log_level="LOUD")
        with pytest.raises(ConfigError):
            apply_overrides(AppConfig(), scheduler_delay_ms=-1)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
