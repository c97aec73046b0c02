"""Split calculator: turns an expense total into per-participant shares.

``compute`` is pure and does not care whether the shares add up; the expense
form uses it for live preview. ``validate`` answers whether the same input may
be saved, and ``build_splits`` is the validate-then-compute path every write
goes through.
"""
from __future__ import annotations

from decimal import ROUND_DOWN, Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .errors import EmptyParticipants, InvalidSplit, NonPositiveAmount, ValidationError
from .models import (
    CENT,
    ZERO,
    Split,
    SplitPolicy,
    amounts_close,
    quantize_cents,
    to_decimal,
)

HUNDRED = Decimal("100")

Inputs = Optional[Mapping[str, Any]]


def _participants(participant_ids: Sequence[str]) -> List[str]:
    ids = [str(participant_id) for participant_id in participant_ids]
    if not ids:
        raise EmptyParticipants("at least one participant is required")
    if len(set(ids)) != len(ids):
        raise InvalidSplit("duplicate participant in split")
    return ids


def _input_values(participant_ids: List[str], inputs: Inputs) -> Dict[str, Decimal]:
    # Participants without an entry count as zero, the same as a blank field.
    inputs = inputs or {}
    values: Dict[str, Decimal] = {}
    for participant_id in participant_ids:
        raw = inputs.get(participant_id)
        if raw is None or raw == "":
            values[participant_id] = ZERO
            continue
        try:
            values[participant_id] = to_decimal(raw)
        except ValueError:
            raise InvalidSplit(f"invalid split value for {participant_id!r}") from None
    return values


def _equal_shares(total: Decimal, participant_ids: List[str]) -> List[Split]:
    count = len(participant_ids)
    total = quantize_cents(total)
    base = (total / count).quantize(CENT, rounding=ROUND_DOWN)
    percentage = quantize_cents(HUNDRED / count)

    # Leftover cents go one each to the first participants, so no share is
    # more than a cent away from total / count.
    leftover = int(((total - base * count) / CENT).to_integral_value())
    step = CENT if leftover > 0 else -CENT

    splits: List[Split] = []
    for index, participant_id in enumerate(participant_ids):
        amount = base + step if index < abs(leftover) else base
        splits.append(Split(participant_id, amount, percentage))
    return splits


def _percentage_shares(total: Decimal, participant_ids: List[str], values: Dict[str, Decimal]) -> List[Split]:
    amounts = {pid: quantize_cents(total * values[pid] / HUNDRED) for pid in participant_ids}

    # Rounding residue goes to the largest share so the sum matches total * sum(pct) / 100.
    target = quantize_cents(total * sum(values.values(), ZERO) / HUNDRED)
    residue = target - sum(amounts.values(), ZERO)
    if residue:
        largest = max(participant_ids, key=lambda pid: values[pid])
        amounts[largest] += residue

    return [Split(pid, amounts[pid], values[pid]) for pid in participant_ids]


def compute(
    total_amount: Any,
    participant_ids: Sequence[str],
    policy: Any,
    inputs: Inputs = None,
) -> List[Split]:
    """Compute the ordered splits without checking that they add up."""
    policy = SplitPolicy.parse(policy)
    ids = _participants(participant_ids)
    try:
        total = to_decimal(total_amount)
    except ValueError:
        raise NonPositiveAmount(f"invalid amount {total_amount!r}") from None

    if policy is SplitPolicy.EQUAL:
        return _equal_shares(total, ids)

    values = _input_values(ids, inputs)
    if policy is SplitPolicy.PERCENTAGE:
        return _percentage_shares(total, ids, values)
    return [Split(pid, values[pid]) for pid in ids]


def build_splits(
    total_amount: Any,
    participant_ids: Sequence[str],
    policy: Any,
    inputs: Inputs = None,
) -> List[Split]:
    """Return the splits, or raise the error that makes this input unsavable."""
    try:
        total = to_decimal(total_amount)
    except ValueError:
        raise NonPositiveAmount(f"invalid amount {total_amount!r}") from None
    if total <= ZERO:
        raise NonPositiveAmount("amount must be positive")

    policy = SplitPolicy.parse(policy)
    ids = _participants(participant_ids)

    if policy is not SplitPolicy.EQUAL:
        values = _input_values(ids, inputs)
        if any(value < ZERO for value in values.values()):
            raise InvalidSplit("split values must not be negative")
        if policy is SplitPolicy.PERCENTAGE:
            percent_total = sum(values.values(), ZERO)
            if not amounts_close(percent_total, HUNDRED):
                raise InvalidSplit(f"percentages add up to {percent_total}, not 100")

    splits = compute(total, ids, policy, inputs)
    split_total = sum((split.amount for split in splits), ZERO)
    if not amounts_close(split_total, total):
        raise InvalidSplit(f"split amounts add up to {split_total}, not {total}")
    return splits


def validate(
    total_amount: Any,
    participant_ids: Sequence[str],
    policy: Any,
    inputs: Inputs = None,
) -> bool:
    try:
        build_splits(total_amount, participant_ids, policy, inputs)
    except ValidationError:
        return False
    return True
