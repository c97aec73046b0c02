from decimal import Decimal

import pytest

from splitledger.errors import EmptyParticipants, InvalidSplit, InvalidSplitPolicy, NonPositiveAmount
from splitledger.models import SplitPolicy
from splitledger.splits import build_splits, compute, validate


def amounts(splits):
    return [(split.participant_id, split.amount) for split in splits]


def test_equal_split_between_two():
    splits = build_splits(50, ["a", "b"], SplitPolicy.EQUAL)
    assert amounts(splits) == [("a", Decimal("25")), ("b", Decimal("25"))]


def test_equal_split_leftover_cent_goes_to_first_participant():
    splits = build_splits("100", ["a", "b", "c"], "equal")
    assert amounts(splits) == [
        ("a", Decimal("33.34")),
        ("b", Decimal("33.33")),
        ("c", Decimal("33.33")),
    ]
    assert sum(split.amount for split in splits) == Decimal("100")
    assert splits[0].percentage == Decimal("33.33")


def test_equal_split_spreads_leftover_cents():
    splits = build_splits("0.05", list("abcdefg"), "equal")
    assert [split.amount for split in splits] == [Decimal("0.01")] * 5 + [Decimal("0")] * 2

    splits = build_splits("1.00", list("abcdef"), "equal")
    assert [split.amount for split in splits] == [Decimal("0.17")] * 4 + [Decimal("0.16")] * 2


@pytest.mark.parametrize("count", [1, 2, 3, 6, 7, 9, 11])
@pytest.mark.parametrize("total", ["0.01", "0.05", "1.00", "10", "99.99", "1000.03"])
def test_equal_shares_stay_within_a_cent_of_even_share(total, count):
    ids = [f"m{index}" for index in range(count)]
    splits = build_splits(total, ids, "equal")
    exact = Decimal(total) / count
    assert all(split.amount >= 0 for split in splits)
    assert all(abs(split.amount - exact) < Decimal("0.01") for split in splits)
    assert sum(split.amount for split in splits) == Decimal(total)


def test_percentage_split():
    splits = build_splits(90, ["a", "b"], SplitPolicy.PERCENTAGE, {"a": 40, "b": "60"})
    assert amounts(splits) == [("a", Decimal("36")), ("b", Decimal("54"))]
    assert [split.percentage for split in splits] == [Decimal("40"), Decimal("60")]


def test_percentage_over_one_hundred_is_invalid():
    inputs = {"a": 40, "b": 70}
    assert validate(100, ["a", "b"], SplitPolicy.PERCENTAGE, inputs) is False
    with pytest.raises(InvalidSplit):
        build_splits(100, ["a", "b"], SplitPolicy.PERCENTAGE, inputs)


def test_percentage_within_tolerance_is_valid():
    inputs = {"a": "33.33", "b": "33.33", "c": "33.33"}
    assert validate(100, ["a", "b", "c"], "percentage", inputs)
    total = sum(split.amount for split in compute(100, ["a", "b", "c"], "percentage", inputs))
    assert abs(total - Decimal("100")) <= Decimal("0.01")


def test_percentage_tolerance_still_requires_amounts_to_add_up():
    # 100.009% passes the percentage check but overshoots a large total by far more than a cent.
    inputs = {"a": "50", "b": "50.009"}
    assert validate(1000000, ["a", "b"], "percentage", inputs) is False


def test_exact_split():
    splits = build_splits(90, ["a", "b", "c"], SplitPolicy.EXACT, {"a": 30, "b": 30, "c": 30})
    assert amounts(splits) == [("a", Decimal("30")), ("b", Decimal("30")), ("c", Decimal("30"))]
    assert all(split.percentage is None for split in splits)


def test_exact_split_must_match_total():
    inputs = {"a": 30, "b": 30}
    assert validate(90, ["a", "b"], "exact", inputs) is False
    with pytest.raises(InvalidSplit):
        build_splits(90, ["a", "b"], "exact", inputs)


def test_exact_split_within_a_cent_is_valid():
    assert validate("10", ["a", "b"], "exact", {"a": "3.33", "b": "6.66"})


def test_compute_ignores_validity_for_preview():
    splits = compute(90, ["a", "b"], "exact", {"a": 10})
    assert amounts(splits) == [("a", Decimal("10")), ("b", Decimal("0"))]


def test_missing_inputs_count_as_zero():
    assert validate(50, ["a", "b"], "exact", {"a": 50})
    assert validate(50, ["a", "b"], "percentage", {"a": 100, "b": ""})


def test_negative_inputs_are_rejected():
    assert validate(50, ["a", "b"], "exact", {"a": 60, "b": -10}) is False


def test_empty_participants():
    with pytest.raises(EmptyParticipants):
        compute(50, [], "equal")
    with pytest.raises(EmptyParticipants):
        build_splits(50, [], "exact", {})
    assert validate(50, [], "equal") is False


@pytest.mark.parametrize("amount", [0, -5, "abc", None])
def test_non_positive_amount(amount):
    with pytest.raises(NonPositiveAmount):
        build_splits(amount, ["a"], "equal")
    assert validate(amount, ["a"], "equal") is False


def test_duplicate_participants_are_rejected():
    with pytest.raises(InvalidSplit):
        build_splits(50, ["a", "a"], "equal")


def test_unknown_policy():
    with pytest.raises(InvalidSplitPolicy):
        compute(50, ["a"], "shares")


def test_non_numeric_input_is_invalid_split():
    with pytest.raises(InvalidSplit):
        compute(50, ["a"], "exact", {"a": "ten"})


@pytest.mark.parametrize(
    "total, policy, inputs",
    [
        ("10", "equal", None),
        ("0.05", "equal", None),
        ("123.45", "percentage", {"a": "12.5", "b": "37.5", "c": "50"}),
        ("99.99", "percentage", {"a": "33.34", "b": "33.33", "c": "33.33"}),
        ("20", "exact", {"a": "5", "b": "5", "c": "10"}),
    ],
)
def test_split_sum_matches_total(total, policy, inputs):
    splits = build_splits(total, ["a", "b", "c"], policy, inputs)
    assert abs(sum(split.amount for split in splits) - Decimal(total)) <= Decimal("0.01")
