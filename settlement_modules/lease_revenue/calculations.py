"""
Allocation calculator -- pure functions, no I/O.

Splits a park-year revenue figure across leases and parcels:

* The revenue base is ``total_revenue`` scaled by the active revenue phase
  percentage (the full figure when the park has no phases).
* The WEA bucket (base x wea%) is split equally over the park's turbine
  sites; the POOL bucket (base x pool%) pro rata by pool square meters.
* The minimum rent (minimum per turbine x turbine count) is distributed
  over the same parcels with the same keys.
* Per lease, the greater of revenue share and minimum rent is paid.  When
  the minimum binds, every WEA/POOL parcel pays its minimum share.
* WEG, KABEL and AUSGLEICH parcels are paid separately: their fixed amount
  if set, otherwise rate x square meters (WEG, AUSGLEICH) or rate x meters
  (KABEL).

Parcel amounts are rounded to cents with ``round_money``; lease totals are
sums of rounded parcel amounts.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from settlement_kernel.db.types import ZERO, round_money
from settlement_kernel.logging_config import get_logger
from settlement_modules.lease_revenue.models import (
    AreaType,
    LeaseAllocation,
    LeaseSnapshot,
    Lessor,
    ParcelAllocation,
    ParkSnapshot,
    PeriodType,
    PlotAreaSnapshot,
    RevenuePhase,
    SettlementCalculation,
)

logger = get_logger("modules.lease_revenue.calculations")

HUNDRED = Decimal("100")
UNKNOWN_LESSOR = "Unbekannt"


def years_in_operation(year: int, commissioning_year: int | None) -> int:
    """Operating year number, 1 for the commissioning year itself."""
    if commissioning_year is None:
        return 1
    return year - commissioning_year + 1


def resolve_revenue_phase(
    phases: Sequence[RevenuePhase],
    year: int,
    commissioning_year: int | None,
) -> RevenuePhase | None:
    """The first phase (by phase number) covering the operating year."""
    operating_year = years_in_operation(year, commissioning_year)
    for phase in sorted(phases, key=lambda p: p.phase_number):
        if operating_year < phase.start_year:
            continue
        if phase.end_year is not None and operating_year > phase.end_year:
            continue
        return phase
    return None


def lessor_display_name(lessor: Lessor) -> str:
    """Company name, else "first last", else a placeholder."""
    if lessor.company_name:
        return lessor.company_name
    name = f"{lessor.first_name or ''} {lessor.last_name or ''}".strip()
    return name or UNKNOWN_LESSOR


def format_address(lessor: Lessor, home_country: str = "Deutschland") -> str | None:
    """One-line postal address; the home country is omitted."""
    parts: list[str] = []
    if lessor.street:
        parts.append(f"{lessor.street} {lessor.house_number}" if lessor.house_number else lessor.street)
    if lessor.postal_code and lessor.city:
        parts.append(f"{lessor.postal_code} {lessor.city}")
    elif lessor.city:
        parts.append(lessor.city)
    if lessor.country and lessor.country != home_country:
        parts.append(lessor.country)
    return ", ".join(parts) if parts else None


def _pct(value: Decimal | None) -> Decimal:
    return value if value is not None else ZERO


class _ParkKeys:
    """Park-wide distribution keys and bucket totals for one calculation."""

    def __init__(self, park: ParkSnapshot, leases: Sequence[LeaseSnapshot], revenue_base: Decimal):
        areas = [a for lease in leases for a in lease.plot_areas]
        self.wea_sites = sum(1 for a in areas if a.area_type == AreaType.WEA_STANDORT)
        self.pool_sqm = sum(
            (a.area_sqm for a in areas if a.area_type == AreaType.POOL and a.area_sqm),
            ZERO,
        )
        wea_pct = _pct(park.wea_share_percentage)
        pool_pct = _pct(park.pool_share_percentage)

        turbines = park.turbine_count or self.wea_sites
        minimum_total = (
            park.minimum_rent_per_turbine * turbines
            if park.minimum_rent_per_turbine is not None
            else ZERO
        )

        self.wea_revenue = revenue_base * wea_pct / HUNDRED
        self.pool_revenue = revenue_base * pool_pct / HUNDRED
        self.wea_minimum = minimum_total * wea_pct / HUNDRED
        self.pool_minimum = minimum_total * pool_pct / HUNDRED

    def wea_ratio(self) -> Decimal:
        return Decimal(1) / self.wea_sites if self.wea_sites else ZERO

    def pool_ratio(self, area: PlotAreaSnapshot) -> Decimal:
        if self.pool_sqm > ZERO and area.area_sqm:
            return area.area_sqm / self.pool_sqm
        return ZERO


def _special_rate(park: ParkSnapshot, area_type: AreaType) -> Decimal:
    if area_type == AreaType.WEG:
        return park.weg_rate_per_sqm or ZERO
    if area_type == AreaType.AUSGLEICH:
        return park.ausgleich_rate_per_sqm or ZERO
    if area_type == AreaType.KABEL:
        return park.kabel_rate_per_m or ZERO
    return ZERO


def _special_compensation(
    park: ParkSnapshot,
    area: PlotAreaSnapshot,
    warnings: list[str],
) -> ParcelAllocation:
    rate = _special_rate(park, area.area_type)
    if area.compensation_fixed_amount is not None:
        amount = round_money(area.compensation_fixed_amount)
        return ParcelAllocation(area, ZERO, ZERO, amount, rate=rate, uses_fixed_amount=True)

    size = area.length_m if area.area_type == AreaType.KABEL else area.area_sqm
    if not size or rate <= ZERO:
        warnings.append(f"parcel {area.id}: no fixed amount and no applicable {area.area_type.value} rate")
        logger.warning(
            "settlement_parcel_without_rate",
            extra={
                "plot_area_id": area.id,
                "area_type": area.area_type.value,
                "size": size,
                "rate": rate,
            },
        )
        return ParcelAllocation(area, ZERO, ZERO, ZERO, rate=rate)

    return ParcelAllocation(area, ZERO, ZERO, round_money(size * rate), rate=rate)


def _revenue_share_parcel(
    area: PlotAreaSnapshot,
    keys: _ParkKeys,
    warnings: list[str],
) -> tuple[Decimal, Decimal]:
    """(revenue share, minimum share) for a WEA or POOL parcel, in cents."""
    if area.area_type == AreaType.WEA_STANDORT:
        ratio = keys.wea_ratio()
        return round_money(keys.wea_revenue * ratio), round_money(keys.wea_minimum * ratio)

    ratio = keys.pool_ratio(area)
    if ratio == ZERO:
        warnings.append(f"parcel {area.id}: pool area without square meters")
        logger.warning(
            "settlement_pool_parcel_without_area",
            extra={"plot_area_id": area.id, "pool_sqm_total": keys.pool_sqm},
        )
    return round_money(keys.pool_revenue * ratio), round_money(keys.pool_minimum * ratio)


def allocate_lease(
    park: ParkSnapshot,
    lease: LeaseSnapshot,
    keys: _ParkKeys,
    warnings: list[str],
    home_country: str = "Deutschland",
) -> LeaseAllocation:
    """Allocation for one lease, floor applied."""
    shares: list[tuple[PlotAreaSnapshot, Decimal, Decimal]] = []
    specials: list[ParcelAllocation] = []

    for area in lease.plot_areas:
        if area.area_type.is_revenue_share:
            if area.compensation_fixed_amount is not None:
                logger.warning(
                    "settlement_fixed_amount_ignored",
                    extra={"plot_area_id": area.id, "area_type": area.area_type.value},
                )
            revenue_share, minimum = _revenue_share_parcel(area, keys, warnings)
            shares.append((area, revenue_share, minimum))
        else:
            specials.append(_special_compensation(park, area, warnings))

    total_revenue_share = sum((s[1] for s in shares), ZERO)
    total_minimum_rent = sum((s[2] for s in shares), ZERO)
    used_minimum = total_revenue_share < total_minimum_rent

    share_parcels = tuple(
        ParcelAllocation(
            plot_area=area,
            revenue_share=revenue_share,
            minimum_rent=minimum,
            amount=minimum if used_minimum else revenue_share,
        )
        for area, revenue_share, minimum in shares
    )
    special_compensation = sum((p.amount for p in specials), ZERO)

    return LeaseAllocation(
        lease_id=lease.id,
        lease_number=lease.lease_number,
        lessor_name=lessor_display_name(lease.lessor),
        lessor_address=format_address(lease.lessor, home_country),
        payment_day=lease.payment_day,
        parcels=share_parcels + tuple(specials),
        total_revenue_share=total_revenue_share,
        total_minimum_rent=total_minimum_rent,
        special_compensation=special_compensation,
        total_payment=max(total_revenue_share, total_minimum_rent) + special_compensation,
        used_minimum=used_minimum,
        wea_count=sum(1 for a in lease.plot_areas if a.area_type == AreaType.WEA_STANDORT),
        pool_count=sum(1 for a in lease.plot_areas if a.area_type == AreaType.POOL),
        other_count=len(specials),
    )


def allocate(
    park: ParkSnapshot,
    leases: Sequence[LeaseSnapshot],
    total_revenue: Decimal,
    year: int,
    period_type: PeriodType = PeriodType.FINAL,
    home_country: str = "Deutschland",
) -> SettlementCalculation:
    """
    Allocate a park-year revenue figure over the given (active) leases.

    ``leases`` must be every active lease of the park: the WEA site count and
    the pool area total are taken across all of them.
    """
    warnings: list[str] = []

    phase = resolve_revenue_phase(park.revenue_phases, year, park.commissioning_year)
    phase_pct = phase.revenue_share_percentage if phase else None
    if park.revenue_phases and phase is None:
        warnings.append(f"no revenue phase covers operating year {years_in_operation(year, park.commissioning_year)}")
        logger.warning(
            "settlement_no_revenue_phase",
            extra={"park_id": park.id, "year": year},
        )
        phase_pct = ZERO
    revenue_base = total_revenue if phase_pct is None else total_revenue * phase_pct / HUNDRED

    share_sum = _pct(park.wea_share_percentage) + _pct(park.pool_share_percentage)
    if share_sum != HUNDRED:
        warnings.append(f"WEA and pool share percentages sum to {share_sum}, not 100")
        logger.warning(
            "settlement_share_mismatch",
            extra={
                "park_id": park.id,
                "wea_share_percentage": park.wea_share_percentage,
                "pool_share_percentage": park.pool_share_percentage,
            },
        )

    keys = _ParkKeys(park, leases, revenue_base)
    allocations = tuple(
        allocate_lease(park, lease, keys, warnings, home_country) for lease in leases
    )

    result = SettlementCalculation(
        park_id=park.id,
        park_name=park.name,
        year=year,
        period_type=period_type,
        total_revenue=total_revenue,
        revenue_base=revenue_base,
        revenue_phase_percentage=phase_pct,
        wea_share_percentage=park.wea_share_percentage,
        pool_share_percentage=park.pool_share_percentage,
        leases=allocations,
        warnings=tuple(warnings),
    )
    logger.debug(
        "settlement_allocated",
        extra={
            "park_id": park.id,
            "year": year,
            "lease_count": len(allocations),
            "total_payment": result.total_payment,
            "used_minimum": result.used_minimum,
        },
    )
    return result
