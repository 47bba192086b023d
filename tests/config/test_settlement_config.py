"""
Tests for the settlement engine configuration.

Validates:
- the packaged default set loads and matches the built-in module defaults
- SETTLEMENT_CONFIG_PATH and explicit paths take precedence
- required keys and value ranges are checked at load time
- LeaseRevenueConfig.from_engine_config carries every setting across
- the load is logged with its checksum
"""

from decimal import Decimal

import pytest
import yaml

from settlement_config import get_active_config
from settlement_config.bridges import build_number_formats
from settlement_config.loader import (
    compute_checksum,
    load_engine_config,
    parse_decimal,
    parse_engine_config,
    parse_number_format,
)
from settlement_kernel.services.invoice_number_service import (
    DEFAULT_NUMBER_FORMATS,
    DocumentType,
)
from settlement_modules.lease_revenue.articles import DEFAULT_ARTICLES
from settlement_modules.lease_revenue.config import LeaseRevenueConfig
from settlement_modules.lease_revenue.models import ArticleType, TaxType
from settlement_modules.lease_revenue.service import LeaseRevenueService
from settlement_modules.lease_revenue.tax import DEFAULT_TAX_RATES


def _document(**overrides) -> dict:
    """A minimal valid configuration document."""
    doc = {
        "config_id": "test",
        "version": 2,
        "engine": {
            "currency": "EUR",
            "materiality_threshold": "0.01",
            "default_payment_day": 15,
            "home_country": "Deutschland",
        },
        "tax_rates": {"STANDARD": "19", "REDUCED": "7", "EXEMPT": "0"},
        "number_formats": {"CREDIT_NOTE": {"pattern": "GS-{year}-{seq:05d}"}},
        "default_articles": [
            {"type": t.value, "label": t.value.title(), "tax_rate": "0", "account_code": 8400}
            for t in ArticleType
        ],
    }
    doc.update(overrides)
    return doc


@pytest.fixture
def config_file(tmp_path):
    def _write(doc: dict):
        path = tmp_path / "settlement.yaml"
        path.write_text(yaml.safe_dump(doc), encoding="utf-8")
        return path

    return _write


class TestDefaultSet:

    def test_loads(self):
        config = get_active_config()
        assert config.config_id == "default"
        assert config.currency == "EUR"
        assert config.default_payment_day == 15
        assert config.home_country == "Deutschland"
        assert config.materiality_threshold == Decimal("0.01")
        assert len(config.checksum) == 64

    def test_matches_builtin_defaults(self):
        config = LeaseRevenueConfig.from_engine_config(get_active_config())
        builtin = LeaseRevenueConfig.with_defaults()
        assert config.tax_rates == DEFAULT_TAX_RATES
        assert config.default_articles == DEFAULT_ARTICLES
        assert config.number_formats == builtin.number_formats

    def test_all_document_types_formatted(self):
        formats = build_number_formats(get_active_config())
        assert set(formats) == set(DocumentType)
        assert formats[DocumentType.CANCELLATION].render(1, 2025) == "ST-2025-00001"


class TestPathResolution:

    def test_explicit_path(self, config_file):
        config = get_active_config(config_file(_document()))
        assert config.config_id == "test"
        assert config.version == 2

    def test_environment_variable(self, monkeypatch, config_file):
        monkeypatch.setenv("SETTLEMENT_CONFIG_PATH", str(config_file(_document(config_id="from-env"))))
        assert get_active_config().config_id == "from-env"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "missing.yaml")

    def test_load_logged_with_checksum(self, captured_logs, config_file):
        config = get_active_config(config_file(_document()))
        (record,) = [r for r in captured_logs() if r["message"] == "settlement_config_loaded"]
        assert record["config_id"] == "test"
        assert record["checksum"] == config.checksum


class TestValidation:

    def test_missing_section(self):
        doc = _document()
        del doc["tax_rates"]
        with pytest.raises(KeyError):
            parse_engine_config(doc)

    @pytest.mark.parametrize("day", [0, 32])
    def test_payment_day_range(self, day):
        doc = _document()
        doc["engine"]["default_payment_day"] = day
        with pytest.raises(ValueError):
            parse_engine_config(doc)

    def test_tax_rate_range(self):
        doc = _document(tax_rates={"STANDARD": "119", "REDUCED": "7", "EXEMPT": "0"})
        with pytest.raises(ValueError):
            parse_engine_config(doc)

    def test_pattern_needs_sequence(self):
        with pytest.raises(ValueError):
            parse_number_format("CREDIT_NOTE", {"pattern": "GS-{year}"})

    def test_max_value_positive(self):
        with pytest.raises(ValueError):
            parse_number_format("CREDIT_NOTE", {"pattern": "GS-{seq}", "max_value": 0})

    def test_unknown_document_type(self):
        doc = _document(number_formats={"DELIVERY_NOTE": {"pattern": "LS-{seq}"}})
        with pytest.raises(ValueError):
            build_number_formats(parse_engine_config(doc))

    def test_bad_decimal(self):
        with pytest.raises(ValueError):
            parse_decimal("zwei", "engine.materiality_threshold")

    def test_float_parsed_from_text(self):
        assert parse_decimal(0.1, "x") == Decimal("0.1")

    def test_missing_article_type_rejected_by_module(self):
        doc = _document()
        doc["default_articles"] = doc["default_articles"][:-1]
        with pytest.raises(ValueError):
            LeaseRevenueConfig.from_engine_config(parse_engine_config(doc))


class TestModuleConfig:

    def test_values_carried_across(self, config_file):
        doc = _document(tax_rates={"STANDARD": "16", "REDUCED": "5", "EXEMPT": "0"})
        doc["engine"].update(default_payment_day=1, materiality_threshold="5.00", home_country="Oesterreich")
        doc["number_formats"] = {"CREDIT_NOTE": {"pattern": "G{year}/{seq:06d}", "max_value": 999999}}

        config = LeaseRevenueConfig.from_engine_config(load_engine_config(config_file(doc)))
        assert config.default_payment_day == 1
        assert config.materiality_threshold == Decimal("5.00")
        assert config.home_country == "Oesterreich"
        assert config.tax_rates[TaxType.STANDARD] == Decimal("16")
        assert config.number_formats[DocumentType.CREDIT_NOTE].render(7, 2025) == "G2025/000007"
        assert config.number_formats[DocumentType.CANCELLATION] == DEFAULT_NUMBER_FORMATS[DocumentType.CANCELLATION]

    def test_active_config_follows_environment(self, monkeypatch, config_file, session):
        doc = _document()
        doc["engine"]["default_payment_day"] = 28
        monkeypatch.setenv("SETTLEMENT_CONFIG_PATH", str(config_file(doc)))

        assert LeaseRevenueConfig.from_active_config().default_payment_day == 28
        assert LeaseRevenueService(session).config.default_payment_day == 28

    def test_account_codes_are_strings(self):
        config = LeaseRevenueConfig.from_engine_config(parse_engine_config(_document()))
        assert all(a.account_code == "8400" for a in config.default_articles)

    def test_direct_validation(self):
        with pytest.raises(ValueError):
            LeaseRevenueConfig(default_payment_day=0)
        with pytest.raises(ValueError):
            LeaseRevenueConfig(materiality_threshold=Decimal("-1"))


class TestChecksum:

    def test_deterministic(self):
        assert compute_checksum(_document()) == compute_checksum(_document())

    def test_changes_with_content(self):
        assert compute_checksum(_document()) != compute_checksum(_document(version=3))
