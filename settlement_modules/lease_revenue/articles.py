"""
Settlement articles: system defaults, park-level resolution, and the
closed lookup table from parcel area type to article type.

The lookup table is checked for completeness when this module is imported,
so a missing (period type, area type) pair fails at startup rather than in
the middle of a generation run.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from decimal import Decimal

from settlement_kernel.exceptions import MissingArticleMappingError
from settlement_kernel.logging_config import get_logger
from settlement_modules.lease_revenue.models import (
    AreaType,
    ArticleType,
    PeriodType,
    SettlementArticle,
)

logger = get_logger("modules.lease_revenue.articles")


DEFAULT_ARTICLES: tuple[SettlementArticle, ...] = (
    SettlementArticle(ArticleType.MINDESTPACHT, "Mindestnutzungsentgeld", Decimal("0"), "8400"),
    SettlementArticle(ArticleType.JAHRESNUTZUNGSENTGELD, "Jahresnutzungsentgeld", Decimal("0"), "8400"),
    SettlementArticle(ArticleType.VORSCHUSSVERRECHNUNG, "Verrechnung Vorschüsse", Decimal("0"), "8400"),
    SettlementArticle(ArticleType.ZUWEGUNG, "Zuwegungsentschaedigung", Decimal("0"), "8401"),
    SettlementArticle(ArticleType.KABELTRASSE, "Kabeltrassenentschaedigung", Decimal("0"), "8401"),
    SettlementArticle(ArticleType.AUSGLEICH, "Ausgleichsentschaedigung", Decimal("0"), "8401"),
)


ARTICLE_BY_AREA: dict[PeriodType, dict[AreaType, ArticleType]] = {
    PeriodType.ADVANCE: {
        AreaType.WEA_STANDORT: ArticleType.MINDESTPACHT,
        AreaType.POOL: ArticleType.MINDESTPACHT,
        AreaType.WEG: ArticleType.ZUWEGUNG,
        AreaType.KABEL: ArticleType.KABELTRASSE,
        AreaType.AUSGLEICH: ArticleType.AUSGLEICH,
    },
    PeriodType.FINAL: {
        AreaType.WEA_STANDORT: ArticleType.JAHRESNUTZUNGSENTGELD,
        AreaType.POOL: ArticleType.JAHRESNUTZUNGSENTGELD,
        AreaType.WEG: ArticleType.ZUWEGUNG,
        AreaType.KABEL: ArticleType.KABELTRASSE,
        AreaType.AUSGLEICH: ArticleType.AUSGLEICH,
    },
}


def check_article_table(
    table: dict[PeriodType, dict[AreaType, ArticleType]] = ARTICLE_BY_AREA,
) -> None:
    """Raise if any period type lacks a mapping for any area type."""
    for period_type in PeriodType:
        mapping = table.get(period_type, {})
        for area_type in AreaType:
            if area_type not in mapping:
                raise MissingArticleMappingError(area_type.value, period_type.value)


check_article_table()


def resolve_articles(
    park_articles: Sequence[SettlementArticle],
    defaults: Iterable[SettlementArticle] = DEFAULT_ARTICLES,
) -> dict[ArticleType, SettlementArticle]:
    """
    Articles in effect for a park.

    A park with no articles uses the defaults.  A park with some articles
    uses its own for the types it configures; types it leaves out fall back
    to the default of that type.
    """
    resolved = {a.article_type: a for a in defaults}
    if not park_articles:
        return resolved

    configured = {a.article_type: a for a in park_articles}
    missing = [t.value for t in ArticleType if t not in configured]
    if missing:
        logger.info(
            "settlement_articles_partially_configured",
            extra={"defaulted_types": missing},
        )
    resolved.update(configured)
    return resolved


def article_for(
    area_type: AreaType,
    period_type: PeriodType,
    articles: dict[ArticleType, SettlementArticle],
) -> SettlementArticle:
    """The article a parcel's line is booked on."""
    article_type = ARTICLE_BY_AREA[period_type][area_type]
    try:
        return articles[article_type]
    except KeyError:
        raise MissingArticleMappingError(area_type.value, period_type.value) from None
