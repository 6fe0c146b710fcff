"""
Pledge Ledger Configuration Schema.

Defines the structure and defaults for ledger settings.  Values may be
overridden from a dict, a YAML file or the environment:

    config = LedgerConfig.from_yaml(Path("ledger.yaml"))
    init_engine_from_url(config.database_url, **config.engine_kwargs())
"""

import os
from dataclasses import dataclass, field, fields
from decimal import Decimal
from pathlib import Path
from typing import Any, Self

import yaml

from pledge_kernel.db.types import SUPPORTED_CURRENCIES
from pledge_kernel.logging_config import get_logger
from pledge_kernel.models.payment import CONTRIBUTING_STATUSES, PaymentStatus

logger = get_logger("config")

DATABASE_URL_ENV = "PLEDGE_LEDGER_DATABASE_URL"
DEFAULT_DATABASE_URL = "sqlite+pysqlite:///:memory:"

_STRATEGIES = {"proportional", "equal", "custom"}


@dataclass
class LedgerConfig:
    """
    Configuration for payment allocation and reconciliation.

    Field defaults match the ledger's documented behavior; override with
    care, since allocation_tolerance and contributing_statuses change what
    counts as a valid split and what counts toward a balance.
    """

    # Validation
    allocation_tolerance: Decimal = Decimal("0.01")
    supported_currencies: frozenset[str] = field(default_factory=lambda: SUPPORTED_CURRENCIES)

    # Reconciliation
    contributing_statuses: frozenset[str] = field(default_factory=lambda: CONTRIBUTING_STATUSES)

    # Redistribution
    default_redistribution_strategy: str = "proportional"
    auto_adjust_allocations: bool = False

    # Storage
    database_url: str = DEFAULT_DATABASE_URL
    echo_sql: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30

    def __post_init__(self):
        if not isinstance(self.allocation_tolerance, Decimal):
            self.allocation_tolerance = Decimal(str(self.allocation_tolerance))
        if self.allocation_tolerance <= 0:
            raise ValueError("allocation_tolerance must be positive")

        self.supported_currencies = frozenset(c.upper() for c in self.supported_currencies)
        if "USD" not in self.supported_currencies:
            raise ValueError("supported_currencies must include USD")

        self.contributing_statuses = frozenset(self.contributing_statuses)
        valid_statuses = {s.value for s in PaymentStatus}
        unknown = self.contributing_statuses - valid_statuses
        if unknown:
            raise ValueError(
                f"contributing_statuses contains unknown statuses {sorted(unknown)}"
            )
        if not self.contributing_statuses:
            raise ValueError("contributing_statuses cannot be empty")

        if self.default_redistribution_strategy not in _STRATEGIES:
            raise ValueError(
                f"default_redistribution_strategy must be one of {sorted(_STRATEGIES)}, "
                f"got '{self.default_redistribution_strategy}'"
            )

        if not self.database_url:
            raise ValueError("database_url cannot be empty")
        if self.pool_size <= 0:
            raise ValueError("pool_size must be positive")
        if self.max_overflow < 0:
            raise ValueError("max_overflow cannot be negative")

        logger.info(
            "ledger_config_initialized",
            extra={
                "allocation_tolerance": str(self.allocation_tolerance),
                "contributing_statuses": sorted(self.contributing_statuses),
                "supported_currencies": sorted(self.supported_currencies),
                "default_redistribution_strategy": self.default_redistribution_strategy,
                "auto_adjust_allocations": self.auto_adjust_allocations,
            },
        )

    def engine_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for init_engine_from_url()."""
        return {
            "echo": self.echo_sql,
            "pool_size": self.pool_size,
            "max_overflow": self.max_overflow,
            "pool_timeout": self.pool_timeout,
        }

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with the documented defaults."""
        logger.info("ledger_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from a dictionary.  Unknown keys are rejected."""
        logger.info(
            "ledger_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown ledger config keys: {sorted(unknown)}")

        data = dict(data)
        if "allocation_tolerance" in data:
            data["allocation_tolerance"] = Decimal(str(data["allocation_tolerance"]))
        for key in ("supported_currencies", "contributing_statuses"):
            if key in data:
                data[key] = frozenset(data[key])
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: Path | str) -> Self:
        """
        Load config from a YAML file.

        The file may hold the settings at top level or under a ``ledger`` key.

        Raises:
            FileNotFoundError: if the file does not exist.
            yaml.YAMLError: if the file contains invalid YAML.
        """
        path = Path(path)
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if "ledger" in data:
            data = data["ledger"] or {}
        logger.info("ledger_config_loaded_from_yaml", extra={"path": str(path)})
        return cls.from_dict(data)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> Self:
        """Defaults, with database_url taken from PLEDGE_LEDGER_DATABASE_URL when set."""
        environ = os.environ if environ is None else environ
        url = environ.get(DATABASE_URL_ENV)
        if url:
            return cls(database_url=url)
        return cls()
