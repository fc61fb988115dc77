"""
Engine configuration (``posting_engine.config``).

Responsibility
--------------
Defines ``EngineConfig`` and loads it from a YAML file.  The
``DATABASE_URL`` environment variable overrides the file's database URL.

Example
-------
::

    posting:
      failure_policy: record_for_retry
      max_retries: 3
      amount_decimal_places: 2
      tax_breakdown_categories: [Invoice, PO]
    database:
      url: postgresql+psycopg2://engine@localhost/ledger

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown policy, category, or a negative number  -> ``ValueError``.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from posting_engine.domain.types import TransactionCategory

DATABASE_URL_ENV = "DATABASE_URL"


class FailurePolicy(str, Enum):
    """What a failed rule posting does to the document's status change."""

    # Log only; the outcome is recorded but nothing is flagged
    LOG_ONLY = "log_only"
    # Flag the outcome needs_posting so it shows up for retry
    RECORD_FOR_RETRY = "record_for_retry"
    # As RECORD_FOR_RETRY, then raise PostingBlockedError to the caller
    BLOCK_TRANSITION = "block_transition"


@dataclass(frozen=True)
class EngineConfig:
    failure_policy: FailurePolicy = FailurePolicy.RECORD_FOR_RETRY
    max_retries: int = 3
    amount_decimal_places: int = 2
    tax_breakdown_categories: frozenset[TransactionCategory] = field(
        default_factory=lambda: frozenset(
            {TransactionCategory.INVOICE, TransactionCategory.PURCHASE_ORDER}
        )
    )
    database_url: str | None = None

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.amount_decimal_places < 0:
            raise ValueError(
                f"amount_decimal_places must be >= 0, got {self.amount_decimal_places}"
            )

    def computes_tax_breakdown(self, category: TransactionCategory) -> bool:
        return TransactionCategory(category) in self.tax_breakdown_categories


def parse_engine_config(
    data: Mapping[str, Any],
    env: Mapping[str, str] | None = None,
) -> EngineConfig:
    """Build an EngineConfig from parsed YAML."""
    env = os.environ if env is None else env
    posting = data.get("posting") or {}
    database = data.get("database") or {}
    defaults = EngineConfig()

    try:
        policy = FailurePolicy(posting.get("failure_policy", defaults.failure_policy.value))
    except ValueError:
        raise ValueError(
            f"Unknown failure_policy {posting.get('failure_policy')!r}; "
            f"expected one of {[p.value for p in FailurePolicy]}"
        ) from None

    if "tax_breakdown_categories" in posting:
        categories = frozenset(
            TransactionCategory(value) for value in posting["tax_breakdown_categories"] or ()
        )
    else:
        categories = defaults.tax_breakdown_categories

    return EngineConfig(
        failure_policy=policy,
        max_retries=int(posting.get("max_retries", defaults.max_retries)),
        amount_decimal_places=int(
            posting.get("amount_decimal_places", defaults.amount_decimal_places)
        ),
        tax_breakdown_categories=categories,
        database_url=env.get(DATABASE_URL_ENV) or database.get("url"),
    )


def load_engine_config(
    path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> EngineConfig:
    """
    Load configuration from a YAML file.

    With no path, returns defaults (still honouring DATABASE_URL).
    """
    data: dict[str, Any] = {}
    if path is not None:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    return parse_engine_config(data, env)
