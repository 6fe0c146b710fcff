"""
Tests for LedgerConfig.

Covers:
- Documented defaults
- Validation in __post_init__
- Loading from dict, YAML file and environment
"""

from decimal import Decimal

import pytest
import yaml

from pledge_kernel.config import DATABASE_URL_ENV, DEFAULT_DATABASE_URL, LedgerConfig


class TestDefaults:
    """The defaults mirror the ledger's documented behavior."""

    def test_with_defaults(self):
        config = LedgerConfig.with_defaults()

        assert config.allocation_tolerance == Decimal("0.01")
        assert config.contributing_statuses == frozenset({"completed", "processing"})
        assert config.default_redistribution_strategy == "proportional"
        assert config.auto_adjust_allocations is False
        assert config.database_url == DEFAULT_DATABASE_URL
        assert "USD" in config.supported_currencies
        assert "ILS" in config.supported_currencies

    def test_engine_kwargs(self):
        config = LedgerConfig(pool_size=5, max_overflow=2, pool_timeout=7, echo_sql=True)

        assert config.engine_kwargs() == {
            "echo": True,
            "pool_size": 5,
            "max_overflow": 2,
            "pool_timeout": 7,
        }


class TestValidation:
    """Invalid settings are rejected at construction."""

    def test_tolerance_coerced_to_decimal(self):
        config = LedgerConfig(allocation_tolerance="0.05")
        assert config.allocation_tolerance == Decimal("0.05")

    def test_non_positive_tolerance_rejected(self):
        with pytest.raises(ValueError, match="allocation_tolerance"):
            LedgerConfig(allocation_tolerance=Decimal("0"))

    def test_usd_required(self):
        with pytest.raises(ValueError, match="USD"):
            LedgerConfig(supported_currencies=frozenset({"EUR"}))

    def test_currencies_uppercased(self):
        config = LedgerConfig(supported_currencies=frozenset({"usd", "eur"}))
        assert config.supported_currencies == frozenset({"USD", "EUR"})

    def test_unknown_status_rejected(self):
        with pytest.raises(ValueError, match="unknown statuses"):
            LedgerConfig(contributing_statuses=frozenset({"completed", "settled"}))

    def test_empty_statuses_rejected(self):
        with pytest.raises(ValueError, match="cannot be empty"):
            LedgerConfig(contributing_statuses=frozenset())

    def test_unknown_strategy_rejected(self):
        with pytest.raises(ValueError, match="default_redistribution_strategy"):
            LedgerConfig(default_redistribution_strategy="largest_remainder")

    def test_pool_size_must_be_positive(self):
        with pytest.raises(ValueError, match="pool_size"):
            LedgerConfig(pool_size=0)


class TestLoading:
    """Config sources."""

    def test_from_dict(self):
        config = LedgerConfig.from_dict(
            {
                "allocation_tolerance": "0.02",
                "contributing_statuses": ["completed"],
                "default_redistribution_strategy": "equal",
            }
        )

        assert config.allocation_tolerance == Decimal("0.02")
        assert config.contributing_statuses == frozenset({"completed"})
        assert config.default_redistribution_strategy == "equal"

    def test_from_dict_rejects_unknown_keys(self):
        with pytest.raises(ValueError, match="Unknown ledger config keys"):
            LedgerConfig.from_dict({"tolerance": "0.01"})

    def test_from_yaml_nested(self, tmp_path):
        path = tmp_path / "ledger.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "ledger": {
                        "auto_adjust_allocations": True,
                        "supported_currencies": ["USD", "ILS"],
                    }
                }
            )
        )

        config = LedgerConfig.from_yaml(path)

        assert config.auto_adjust_allocations is True
        assert config.supported_currencies == frozenset({"USD", "ILS"})

    def test_from_yaml_top_level(self, tmp_path):
        path = tmp_path / "ledger.yaml"
        path.write_text("allocation_tolerance: 0.01\npool_size: 3\n")

        config = LedgerConfig.from_yaml(path)

        assert config.allocation_tolerance == Decimal("0.01")
        assert config.pool_size == 3

    def test_from_yaml_empty_file(self, tmp_path):
        path = tmp_path / "ledger.yaml"
        path.write_text("")

        assert LedgerConfig.from_yaml(path) == LedgerConfig()

    def test_from_yaml_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            LedgerConfig.from_yaml(tmp_path / "absent.yaml")

    def test_from_env(self):
        config = LedgerConfig.from_env({DATABASE_URL_ENV: "postgresql://u:p@localhost/pledges"})
        assert config.database_url == "postgresql://u:p@localhost/pledges"

    def test_from_env_without_url(self):
        assert LedgerConfig.from_env({}).database_url == DEFAULT_DATABASE_URL
