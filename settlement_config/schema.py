"""
Configuration schema (``settlement_config.schema``).

Frozen dataclasses produced by the loader.  No dependency on the kernel or
the modules; ``bridges.py`` translates them into kernel inputs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class ArticleDefault:
    """System default for one settlement line type."""
    article_type: str
    label: str
    tax_rate: Decimal
    account_code: str


@dataclass(frozen=True)
class NumberFormatDef:
    pattern: str
    max_value: int


@dataclass(frozen=True)
class EngineConfig:
    """The complete settlement engine configuration."""
    config_id: str
    version: int
    currency: str
    materiality_threshold: Decimal
    default_payment_day: int
    home_country: str
    tax_rates: dict[str, Decimal] = field(default_factory=dict)
    number_formats: dict[str, NumberFormatDef] = field(default_factory=dict)
    default_articles: tuple[ArticleDefault, ...] = ()
    checksum: str = ""
