from decimal import Decimal

import pytest

from splitledger import groups
from splitledger.errors import (
    DanglingReference,
    DuplicateMemberName,
    ExpenseNotFound,
    InvalidExpense,
    InvalidGroup,
    InvalidMember,
    InvalidSplit,
    MemberInUse,
    MemberNotFound,
)
from splitledger.models import Category, SplitPolicy


def test_create_group_requires_name():
    with pytest.raises(InvalidGroup):
        groups.create_group("   ")


def test_update_group_keeps_identity(group_ab):
    updated = groups.update_group(group_ab, name="Weekend", description="Lake house")
    assert updated.name == "Weekend"
    assert updated.description == "Lake house"
    assert updated.id == group_ab.id
    assert updated.created_at == group_ab.created_at
    assert group_ab.name == "Trip"


def test_add_member_appends_in_order(group_ab):
    group, member = groups.add_member(group_ab, "  Carol ", email="carol@example.com")
    assert member.name == "Carol"
    assert member.email == "carol@example.com"
    assert group.member_ids == ["a", "b", member.id]
    assert group_ab.member_ids == ["a", "b"]


def test_duplicate_member_name_is_a_soft_conflict(group_ab):
    with pytest.raises(DuplicateMemberName):
        groups.add_member(group_ab, "a")
    group, member = groups.add_member(group_ab, "a", allow_duplicate_name=True)
    assert len(group.members) == 3


def test_add_member_rejects_blank_name_and_unknown_fields(group_ab):
    with pytest.raises(InvalidMember):
        groups.add_member(group_ab, "")
    with pytest.raises(InvalidMember):
        groups.add_member(group_ab, "Dave", shoe_size=44)


def test_remove_member_in_use_is_refused(group_ab):
    group, expense = groups.add_expense(group_ab, "Dinner", 50, "a", ["a", "b"])
    with pytest.raises(MemberInUse) as excinfo:
        groups.remove_member(group, "b")
    assert excinfo.value.expense_ids == (expense.id,)
    assert group.member_ids == ["a", "b"]
    assert len(group.expenses) == 1


def test_remove_member_used_only_as_payer_is_refused(group_abc):
    group, _ = groups.add_expense(group_abc, "Gift", 20, "c", ["a", "b"])
    with pytest.raises(MemberInUse):
        groups.remove_member(group, "c")


def test_remove_unused_member(group_abc):
    group = groups.remove_member(group_abc, "c")
    assert group.member_ids == ["a", "b"]


def test_remove_unknown_member(group_ab):
    with pytest.raises(MemberNotFound):
        groups.remove_member(group_ab, "zed")


def test_add_expense_records_policy_and_category(group_ab):
    group, expense = groups.add_expense(
        group_ab,
        "Flight",
        "200",
        "a",
        ["a", "b"],
        SplitPolicy.PERCENTAGE,
        {"a": 25, "b": 75},
        category="Travel",
        date="2024-05-01",
        tags=["trip"],
    )
    assert expense.split_type is SplitPolicy.PERCENTAGE
    assert expense.category is Category.TRAVEL
    assert expense.date.isoformat() == "2024-05-01"
    assert expense.tags == ("trip",)
    assert [s.amount for s in expense.splits] == [Decimal("50"), Decimal("150")]
    assert group.expense(expense.id) == expense


def test_add_expense_with_unknown_payer(group_ab):
    with pytest.raises(DanglingReference):
        groups.add_expense(group_ab, "Dinner", 50, "zed", ["a", "b"])


def test_add_expense_with_unknown_participant(group_ab):
    with pytest.raises(DanglingReference):
        groups.add_expense(group_ab, "Dinner", 50, "a", ["a", "zed"])


def test_invalid_split_leaves_group_unchanged(group_ab):
    with pytest.raises(InvalidSplit):
        groups.add_expense(group_ab, "Dinner", 50, "a", ["a", "b"], "percentage", {"a": 40, "b": 70})
    assert group_ab.expenses == ()


def test_add_expense_requires_title(group_ab):
    with pytest.raises(InvalidExpense):
        groups.add_expense(group_ab, " ", 50, "a", ["a"])


def test_update_expense_resplits(group_abc):
    group, expense = groups.add_expense(group_abc, "Dinner", 60, "a", ["a", "b", "c"])
    group, _ = groups.add_expense(group, "Taxi", 10, "b", ["b"])

    group, updated = groups.update_expense(group, expense.id, amount=90, participant_ids=["a", "b"])

    assert updated.id == expense.id
    assert updated.created_at == expense.created_at
    assert [e.title for e in group.expenses] == ["Dinner", "Taxi"]
    assert [(s.participant_id, s.amount) for s in updated.splits] == [("a", 45), ("b", 45)]


def test_update_expense_keeps_existing_inputs(group_ab):
    group, expense = groups.add_expense(group_ab, "Hotel", 100, "a", ["a", "b"], "exact", {"a": 70, "b": 30})
    group, updated = groups.update_expense(group, expense.id, title="Hotel (2 nights)")
    assert updated.title == "Hotel (2 nights)"
    assert [s.amount for s in updated.splits] == [70, 30]

    # New total no longer matches the stored exact amounts.
    with pytest.raises(InvalidSplit):
        groups.update_expense(group, expense.id, amount=120)


def test_update_expense_rejects_unknown_fields(group_ab):
    group, expense = groups.add_expense(group_ab, "Dinner", 50, "a", ["a", "b"])
    with pytest.raises(InvalidExpense):
        groups.update_expense(group, expense.id, colour="red")


def test_update_and_remove_missing_expense(group_ab):
    with pytest.raises(ExpenseNotFound):
        groups.update_expense(group_ab, "nope", title="x")
    with pytest.raises(ExpenseNotFound):
        groups.remove_expense(group_ab, "nope")


def test_remove_expense_frees_member(group_ab):
    group, expense = groups.add_expense(group_ab, "Dinner", 50, "a", ["a", "b"])
    group = groups.remove_expense(group, expense.id)
    group = groups.remove_member(group, "b")
    assert group.member_ids == ["a"]
