"""
Property-based tests for the settlement arithmetic.

Invariants checked over generated inputs:
- tax split: gross = net + tax, tax is the half-up rounded rate share
- installments: divisor x installment reconstructs the yearly amount to
  within the rounding of one cent per installment
- reconciliation: per-parcel revenue shares add up to the revenue base
- floor: no lease is paid less than its minimum rent or its revenue share
"""

from decimal import Decimal
from uuid import uuid4

from hypothesis import given, settings
from hypothesis import strategies as st

from settlement_modules.lease_revenue.calculations import allocate
from settlement_modules.lease_revenue.installments import DIVISORS, installment_amount
from settlement_modules.lease_revenue.models import (
    AdvanceInterval,
    AreaType,
    LeaseSnapshot,
    Lessor,
    ParkSnapshot,
    PlotAreaSnapshot,
    TaxType,
)
from settlement_modules.lease_revenue.tax import calculate_tax

CENT = Decimal("0.01")

money = st.decimals(
    min_value=Decimal("0"),
    max_value=Decimal("10000000"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)
square_meters = st.decimals(
    min_value=Decimal("1"),
    max_value=Decimal("500000"),
    places=0,
    allow_nan=False,
    allow_infinity=False,
)
wea_percentages = st.integers(min_value=0, max_value=100)


def _park(lease_count: int, wea_pct: int, minimum: Decimal) -> ParkSnapshot:
    return ParkSnapshot(
        id=uuid4(),
        name="Windpark Hypothesis",
        turbine_count=lease_count,
        minimum_rent_per_turbine=minimum,
        wea_share_percentage=Decimal(wea_pct),
        pool_share_percentage=Decimal(100 - wea_pct),
    )


def _leases(pool_sizes: list[Decimal]) -> list[LeaseSnapshot]:
    return [
        LeaseSnapshot(
            id=uuid4(),
            lease_number=f"L-{i:03d}",
            lessor=Lessor(id=uuid4(), last_name="Lessor"),
            plot_areas=(
                PlotAreaSnapshot(id=uuid4(), area_type=AreaType.WEA_STANDORT),
                PlotAreaSnapshot(id=uuid4(), area_type=AreaType.POOL, area_sqm=sqm),
            ),
        )
        for i, sqm in enumerate(pool_sizes, start=1)
    ]


class TestTaxSplitProperties:

    @given(net=money, tax_type=st.sampled_from(list(TaxType)))
    @settings(max_examples=200, deadline=None)
    def test_gross_is_net_plus_tax(self, net, tax_type):
        split = calculate_tax(net, tax_type)
        assert split.gross_amount == split.net_amount + split.tax_amount
        assert abs(split.tax_amount - net * split.tax_rate / 100) <= Decimal("0.005")
        assert split.tax_amount >= 0


class TestInstallmentProperties:

    @given(yearly=money, interval=st.sampled_from(list(AdvanceInterval)))
    @settings(max_examples=200, deadline=None)
    def test_installments_reconstruct_yearly_amount(self, yearly, interval):
        divisor = DIVISORS[interval]
        amount = installment_amount(yearly, interval)
        assert amount == amount.quantize(CENT)
        assert abs(amount * divisor - yearly) <= Decimal("0.005") * divisor


class TestAllocationProperties:

    @given(
        revenue=money,
        wea_pct=wea_percentages,
        pool_sizes=st.lists(square_meters, min_size=1, max_size=5),
    )
    @settings(max_examples=100, deadline=None)
    def test_revenue_shares_reconcile_to_base(self, revenue, wea_pct, pool_sizes):
        result = allocate(_park(len(pool_sizes), wea_pct, Decimal("0")), _leases(pool_sizes), revenue, 2025)
        shares = sum(lease.total_revenue_share for lease in result.leases)
        parcel_count = 2 * len(pool_sizes)
        assert abs(shares - result.revenue_base) <= CENT * parcel_count

    @given(
        revenue=money,
        minimum=money,
        wea_pct=wea_percentages,
        pool_sizes=st.lists(square_meters, min_size=1, max_size=5),
    )
    @settings(max_examples=100, deadline=None)
    def test_payment_never_below_floor_or_share(self, revenue, minimum, wea_pct, pool_sizes):
        result = allocate(_park(len(pool_sizes), wea_pct, minimum), _leases(pool_sizes), revenue, 2025)
        for lease in result.leases:
            assert lease.total_payment >= lease.total_minimum_rent + lease.special_compensation
            assert lease.total_payment >= lease.total_revenue_share + lease.special_compensation
            assert lease.used_minimum == (lease.total_revenue_share < lease.total_minimum_rent)
            paid = sum(p.amount for p in lease.parcels)
            assert paid == lease.total_payment
