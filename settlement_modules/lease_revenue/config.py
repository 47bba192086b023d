"""
Lease Revenue Configuration Schema.

Defaults for payment terms, tax rates, settlement articles and document
number formats.  ``from_active_config`` builds the schema from the YAML
engine configuration loaded by ``settlement_config``; services and the
orchestrator use it when no configuration is injected.  ``with_defaults``
gives the same values from built-in constants.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Self

from settlement_config import get_active_config
from settlement_config.bridges import build_number_formats
from settlement_config.schema import EngineConfig
from settlement_kernel.logging_config import get_logger
from settlement_kernel.services.invoice_number_service import (
    DEFAULT_NUMBER_FORMATS,
    DocumentType,
    NumberFormat,
)
from settlement_modules.lease_revenue.articles import DEFAULT_ARTICLES
from settlement_modules.lease_revenue.models import ArticleType, SettlementArticle, TaxType
from settlement_modules.lease_revenue.tax import DEFAULT_TAX_RATES

logger = get_logger("modules.lease_revenue.config")


@dataclass
class LeaseRevenueConfig:
    """Configuration schema for the lease revenue settlement module."""

    # Payment day when neither the lease nor the park sets one
    default_payment_day: int = 15

    # Country omitted from lessor addresses
    home_country: str = "Deutschland"

    currency: str = "EUR"

    # Credit notes with |net| below this are not issued
    materiality_threshold: Decimal = Decimal("0.01")

    # Fallback tax table for tenants without configured rates
    tax_rates: dict[TaxType, Decimal] = field(default_factory=lambda: dict(DEFAULT_TAX_RATES))

    # Articles for parks without their own article table
    default_articles: tuple[SettlementArticle, ...] = DEFAULT_ARTICLES

    number_formats: dict[DocumentType, NumberFormat] = field(
        default_factory=lambda: dict(DEFAULT_NUMBER_FORMATS)
    )

    def __post_init__(self):
        if not 1 <= self.default_payment_day <= 31:
            raise ValueError("default_payment_day must be between 1 and 31")
        if self.materiality_threshold < 0:
            raise ValueError("materiality_threshold cannot be negative")
        for tax_type, rate in self.tax_rates.items():
            if rate < 0 or rate > 100:
                raise ValueError(f"tax rate for {tax_type.value} must be between 0 and 100")
        configured = {a.article_type for a in self.default_articles}
        missing = [t.value for t in ArticleType if t not in configured]
        if missing:
            raise ValueError(f"default_articles missing types: {', '.join(missing)}")

        logger.info(
            "lease_revenue_config_initialized",
            extra={
                "default_payment_day": self.default_payment_day,
                "home_country": self.home_country,
                "currency": self.currency,
                "materiality_threshold": str(self.materiality_threshold),
                "tax_rates": {t.value: str(r) for t, r in self.tax_rates.items()},
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with the built-in German lease defaults."""
        return cls()

    @classmethod
    def from_engine_config(cls, config: EngineConfig) -> Self:
        """Translate a loaded ``EngineConfig`` into the module schema."""
        return cls(
            default_payment_day=config.default_payment_day,
            home_country=config.home_country,
            currency=config.currency,
            materiality_threshold=config.materiality_threshold,
            tax_rates={TaxType(name): rate for name, rate in config.tax_rates.items()},
            default_articles=tuple(
                SettlementArticle(
                    article_type=ArticleType(a.article_type),
                    label=a.label,
                    tax_rate=a.tax_rate,
                    account_code=a.account_code,
                )
                for a in config.default_articles
            ),
            number_formats={**DEFAULT_NUMBER_FORMATS, **build_number_formats(config)},
        )

    @classmethod
    def from_active_config(cls, path: Path | str | None = None) -> Self:
        """Build the schema from the active YAML set (see ``get_active_config``)."""
        return cls.from_engine_config(get_active_config(path))
