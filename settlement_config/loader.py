"""
Configuration Loader (``settlement_config.loader``).

Responsibility
--------------
Reads a YAML configuration file and parses it into the frozen
``EngineConfig`` dataclass.  Runtime callers go through
``settlement_config.get_active_config()``.

Invariants enforced
-------------------
* Required keys are never defaulted silently: a missing key raises.
* Money and rate values are parsed as ``Decimal`` from their string form.
* ``compute_checksum`` is deterministic for identical input.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Out-of-range values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from settlement_config.schema import ArticleDefault, EngineConfig, NumberFormatDef

TAX_CATEGORIES = ("STANDARD", "REDUCED", "EXEMPT")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, field_name: str) -> Decimal:
    """Parse a Decimal from a YAML scalar (string or int)."""
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"{field_name}: cannot parse decimal from {value!r}") from exc


def parse_article(data: dict[str, Any]) -> ArticleDefault:
    """Parse one default article entry."""
    return ArticleDefault(
        article_type=data["type"],
        label=data["label"],
        tax_rate=parse_decimal(data["tax_rate"], f"default_articles.{data['type']}.tax_rate"),
        account_code=str(data["account_code"]),
    )


def parse_number_format(name: str, data: dict[str, Any]) -> NumberFormatDef:
    pattern = data["pattern"]
    if "{seq" not in pattern:
        raise ValueError(f"number_formats.{name}: pattern must contain {{seq}}")
    max_value = int(data.get("max_value", 99_999))
    if max_value < 1:
        raise ValueError(f"number_formats.{name}: max_value must be positive")
    return NumberFormatDef(pattern=pattern, max_value=max_value)


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_engine_config(data: dict[str, Any]) -> EngineConfig:
    """
    Build an ``EngineConfig`` from a parsed YAML document.

    Raises:
        KeyError: a required section or key is missing.
        ValueError: a value is out of range.
    """
    engine = data["engine"]

    payment_day = int(engine["default_payment_day"])
    if not 1 <= payment_day <= 31:
        raise ValueError(f"engine.default_payment_day out of range: {payment_day}")

    tax_rates = {
        category: parse_decimal(data["tax_rates"][category], f"tax_rates.{category}")
        for category in TAX_CATEGORIES
    }
    for category, rate in tax_rates.items():
        if rate < 0 or rate > 100:
            raise ValueError(f"tax_rates.{category} out of range: {rate}")

    return EngineConfig(
        config_id=str(data.get("config_id", "default")),
        version=int(data.get("version", 1)),
        currency=engine["currency"],
        materiality_threshold=parse_decimal(
            engine["materiality_threshold"], "engine.materiality_threshold"
        ),
        default_payment_day=payment_day,
        home_country=engine["home_country"],
        tax_rates=tax_rates,
        number_formats={
            name: parse_number_format(name, fmt)
            for name, fmt in (data.get("number_formats") or {}).items()
        },
        default_articles=tuple(parse_article(a) for a in data["default_articles"]),
        checksum=compute_checksum(data),
    )


def load_engine_config(path: Path) -> EngineConfig:
    """Load and parse a configuration file."""
    return parse_engine_config(load_yaml_file(path))
