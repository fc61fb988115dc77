"""Engine configuration loading from YAML and the environment."""

import pytest
import yaml

from posting_engine.config import (
    DATABASE_URL_ENV,
    EngineConfig,
    FailurePolicy,
    load_engine_config,
    parse_engine_config,
)
from posting_engine.domain.types import TransactionCategory

CONFIG_YAML = """
posting:
  failure_policy: block_transition
  max_retries: 5
  amount_decimal_places: 3
  tax_breakdown_categories: [Invoice]
database:
  url: postgresql+psycopg2://engine@localhost/ledger
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "posting.yaml"
    path.write_text(CONFIG_YAML)
    return path


class TestLoadEngineConfig:

    def test_loads_yaml(self, config_file):
        config = load_engine_config(config_file, env={})

        assert config.failure_policy is FailurePolicy.BLOCK_TRANSITION
        assert config.max_retries == 5
        assert config.amount_decimal_places == 3
        assert config.tax_breakdown_categories == frozenset({TransactionCategory.INVOICE})
        assert config.database_url == "postgresql+psycopg2://engine@localhost/ledger"

    def test_environment_overrides_database_url(self, config_file):
        config = load_engine_config(config_file, env={DATABASE_URL_ENV: "sqlite://"})

        assert config.database_url == "sqlite://"

    def test_defaults_without_file(self):
        config = load_engine_config(env={})

        assert config == EngineConfig()
        assert config.failure_policy is FailurePolicy.RECORD_FOR_RETRY
        assert config.max_retries == 3
        assert config.database_url is None

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert load_engine_config(path, env={}) == EngineConfig()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_engine_config(tmp_path / "missing.yaml", env={})

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("posting: [unclosed")

        with pytest.raises(yaml.YAMLError):
            load_engine_config(path, env={})


class TestValidation:

    @pytest.mark.parametrize(
        "posting",
        [
            {"failure_policy": "retry_forever"},
            {"max_retries": -1},
            {"amount_decimal_places": -2},
            {"tax_breakdown_categories": ["Receipt"]},
        ],
    )
    def test_rejected(self, posting):
        with pytest.raises(ValueError):
            parse_engine_config({"posting": posting}, env={})

    def test_empty_category_list_disables_breakdown(self):
        config = parse_engine_config({"posting": {"tax_breakdown_categories": []}}, env={})

        assert not config.computes_tax_breakdown(TransactionCategory.INVOICE)

    def test_computes_tax_breakdown(self):
        config = EngineConfig()

        assert config.computes_tax_breakdown("Invoice")
        assert config.computes_tax_breakdown(TransactionCategory.PURCHASE_ORDER)
        assert not config.computes_tax_breakdown(TransactionCategory.PAYMENT)
