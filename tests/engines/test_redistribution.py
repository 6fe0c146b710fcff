"""
Tests for the allocation redistribution engine.

Covers:
- Proportional rescaling (ratio preserved)
- Equal split with residual to the first allocation
- Custom pass-through
- should_redistribute gate
- Edge cases and error handling
"""

from decimal import Decimal

import pytest

from pledge_engines.redistribution import (
    AllocationRedistributor,
    RedistributionStrategy,
    should_redistribute,
)
from pledge_kernel.domain.commands import AllocationRequest
from pledge_kernel.exceptions import InvalidRedistributionError, ValidationError


def _allocs(*pairs) -> tuple[AllocationRequest, ...]:
    return tuple(
        AllocationRequest(pledge_id=pid, allocated_amount=Decimal(amount))
        for pid, amount in pairs
    )


def _amounts(allocations) -> list[Decimal]:
    return [a.allocated_amount for a in allocations]


class TestProportional:
    """Ratios are preserved; the total matches exactly."""

    def setup_method(self):
        self.engine = AllocationRedistributor()

    def test_scales_down_keeping_ratio(self):
        """60:40 rescaled to 50 gives 30:20."""
        result = self.engine.redistribute(
            allocations=_allocs((1, "60"), (2, "40")),
            new_total=Decimal("50"),
            strategy="proportional",
        )

        assert [a.pledge_id for a in result] == [1, 2]
        assert _amounts(result) == [Decimal("30.00"), Decimal("20.00")]
        assert sum(_amounts(result)) == Decimal("50")

    def test_residual_goes_to_first(self):
        result = self.engine.redistribute(
            allocations=_allocs((1, "1"), (2, "1"), (3, "1")),
            new_total=Decimal("10.00"),
            strategy=RedistributionStrategy.PROPORTIONAL,
        )

        assert _amounts(result) == [Decimal("3.34"), Decimal("3.33"), Decimal("3.33")]
        assert sum(_amounts(result)) == Decimal("10.00")

    def test_other_fields_preserved(self):
        original = (
            AllocationRequest(
                pledge_id=1,
                allocated_amount=Decimal("75"),
                installment_schedule_id=11,
                receipt_number="R-1",
                notes="first",
            ),
            AllocationRequest(pledge_id=2, allocated_amount=Decimal("25")),
        )

        result = self.engine.redistribute(
            allocations=original,
            new_total=Decimal("200"),
            strategy="proportional",
        )

        assert result[0].installment_schedule_id == 11
        assert result[0].receipt_number == "R-1"
        assert result[0].notes == "first"
        assert _amounts(result) == [Decimal("150.00"), Decimal("50.00")]
        # Inputs untouched
        assert original[0].allocated_amount == Decimal("75")


class TestEqual:
    """Equal shares with a deterministic rounding residual."""

    def setup_method(self):
        self.engine = AllocationRedistributor()

    def test_equal_round_trip(self):
        """N values summing exactly to T, equal apart from the first's residual."""
        total = Decimal("100.00")
        result = self.engine.redistribute(
            allocations=_allocs((1, "10"), (2, "70"), (3, "20")),
            new_total=total,
            strategy="equal",
        )

        amounts = _amounts(result)
        assert sum(amounts) == total
        assert amounts == [Decimal("33.34"), Decimal("33.33"), Decimal("33.33")]

        share = total / 3
        for amount in amounts[1:]:
            assert abs(amount - share) <= share * Decimal("0.0001")

    def test_equal_even_split(self):
        result = self.engine.redistribute(
            allocations=_allocs((1, "1"), (2, "1"), (3, "1"), (4, "1")),
            new_total=Decimal("1000"),
            strategy="equal",
        )
        assert _amounts(result) == [Decimal("250.00")] * 4


class TestCustomAndEdgeCases:
    def setup_method(self):
        self.engine = AllocationRedistributor()

    def test_custom_is_pass_through(self):
        original = _allocs((1, "60"), (2, "40"))
        result = self.engine.redistribute(
            allocations=original,
            new_total=Decimal("50"),
            strategy="custom",
        )
        assert result == original

    def test_proportional_zero_total_is_noop(self):
        """Non-positive existing total cannot provide ratios."""
        original = (
            AllocationRequest(pledge_id=1, allocated_amount=Decimal("0")),
            AllocationRequest(pledge_id=2, allocated_amount=Decimal("0")),
        )
        result = self.engine.redistribute(
            allocations=original,
            new_total=Decimal("50"),
            strategy="proportional",
        )
        assert result == original

    def test_empty_allocations(self):
        assert self.engine.redistribute(
            allocations=(), new_total=Decimal("10"), strategy="equal"
        ) == ()

    def test_unknown_strategy(self):
        with pytest.raises(InvalidRedistributionError) as exc_info:
            self.engine.redistribute(
                allocations=_allocs((1, "10")),
                new_total=Decimal("10"),
                strategy="largest_remainder",
            )
        assert exc_info.value.strategy == "largest_remainder"
        assert isinstance(exc_info.value, ValidationError)

    def test_non_positive_total(self):
        with pytest.raises(InvalidRedistributionError, match="new_total") as exc_info:
            self.engine.redistribute(
                allocations=_allocs((1, "10")),
                new_total=Decimal("0"),
                strategy="equal",
            )
        assert exc_info.value.code == "INVALID_REDISTRIBUTION"

    def test_emits_engine_trace(self, captured_logs):
        self.engine.redistribute(
            allocations=_allocs((1, "60"), (2, "40")),
            new_total=Decimal("50"),
            strategy="proportional",
        )

        traces = [r for r in captured_logs() if r["message"] == "PLEDGE_ENGINE_TRACE"]
        assert len(traces) == 1
        assert traces[0]["engine_name"] == "redistribution"
        assert len(traces[0]["input_fingerprint"]) == 16


class TestShouldRedistribute:
    def test_requires_auto_adjust(self):
        assert not should_redistribute(Decimal("100"), Decimal("50"), auto_adjust=False)

    def test_requires_divergence(self):
        assert not should_redistribute(Decimal("100"), Decimal("100.01"), auto_adjust=True)

    def test_true_when_diverged(self):
        assert should_redistribute(Decimal("100"), Decimal("50"), auto_adjust=True)
