"""Group editing.

Every function takes a ``Group`` snapshot and returns a new one; the snapshot
passed in is never changed. Invalid edits raise before anything is built, so
a caller that catches the error still holds the untouched group.
"""
from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Optional, Sequence, Tuple

from .errors import (
    DanglingReference,
    DuplicateMemberName,
    ExpenseNotFound,
    InvalidExpense,
    InvalidGroup,
    InvalidMember,
    MemberInUse,
    MemberNotFound,
)
from .models import (
    Category,
    Expense,
    Group,
    Member,
    SplitPolicy,
    parse_date,
    new_id,
    to_decimal,
    utc_now,
)
from .splits import build_splits

_UNSET: Any = object()


def create_group(
    name: str,
    description: Optional[str] = None,
    group_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Group:
    name = (name or "").strip()
    if not name:
        raise InvalidGroup("group name is required")
    now = now or utc_now()
    return Group(
        id=group_id or new_id(),
        name=name,
        description=description,
        created_at=now,
        updated_at=now,
    )


def update_group(group: Group, name: Any = _UNSET, description: Any = _UNSET) -> Group:
    changes = {}
    if name is not _UNSET:
        name = (name or "").strip()
        if not name:
            raise InvalidGroup("group name is required")
        changes["name"] = name
    if description is not _UNSET:
        changes["description"] = description
    return replace(group, updated_at=utc_now(), **changes)


def find_members_by_name(group: Group, name: str) -> Tuple[Member, ...]:
    wanted = name.strip().lower()
    return tuple(member for member in group.members if member.name.strip().lower() == wanted)


def add_member(
    group: Group,
    name: str,
    allow_duplicate_name: bool = False,
    member_id: Optional[str] = None,
    **fields: Any,
) -> Tuple[Group, Member]:
    name = (name or "").strip()
    if not name:
        raise InvalidMember("member name is required")
    unknown = set(fields) - set(Member.OPTIONAL_FIELDS)
    if unknown:
        raise InvalidMember(f"unknown member fields: {sorted(unknown)}")
    if not allow_duplicate_name and find_members_by_name(group, name):
        raise DuplicateMemberName(f"a member named {name!r} already exists")

    member = Member(id=member_id or new_id(), name=name, **fields)
    if group.member(member.id) is not None:
        raise InvalidMember(f"member id {member.id!r} already exists")
    return replace(group, members=group.members + (member,), updated_at=utc_now()), member


def remove_member(group: Group, member_id: str) -> Group:
    """Remove an unreferenced member; members used by any expense are refused."""
    if group.member(member_id) is None:
        raise MemberNotFound(f"no member {member_id!r}")

    referencing = [expense.id for expense in group.expenses if expense.involves(member_id)]
    if referencing:
        raise MemberInUse(member_id, referencing)

    members = tuple(member for member in group.members if member.id != member_id)
    return replace(group, members=members, updated_at=utc_now())


def _build_expense(
    group: Group,
    expense_id: str,
    title: str,
    amount: Any,
    paid_by: str,
    participant_ids: Sequence[str],
    policy: Any,
    inputs: Optional[Mapping[str, Any]],
    category: Any,
    date: Any,
    notes: Optional[str],
    description: Optional[str],
    tags: Iterable[str],
    created_at: datetime,
) -> Expense:
    title = (title or "").strip()
    if not title:
        raise InvalidExpense("expense title is required")

    member_ids = set(group.member_ids)
    if paid_by not in member_ids:
        raise DanglingReference(paid_by, expense_id)
    for participant_id in participant_ids:
        if participant_id not in member_ids:
            raise DanglingReference(participant_id, expense_id)

    policy = SplitPolicy.parse(policy)
    splits = build_splits(amount, participant_ids, policy, inputs)
    try:
        expense_date = parse_date(date)
    except ValueError:
        raise InvalidExpense(f"invalid date {date!r}") from None

    return Expense(
        id=expense_id,
        title=title,
        amount=to_decimal(amount),
        paid_by=paid_by,
        splits=tuple(splits),
        category=Category.parse(category),
        date=expense_date,
        split_type=policy,
        notes=notes,
        description=description,
        tags=tuple(tags),
        created_at=created_at,
    )


def add_expense(
    group: Group,
    title: str,
    amount: Any,
    paid_by: str,
    participant_ids: Sequence[str],
    policy: Any = SplitPolicy.EQUAL,
    inputs: Optional[Mapping[str, Any]] = None,
    category: Any = Category.OTHER,
    date: Optional[date] = None,
    notes: Optional[str] = None,
    description: Optional[str] = None,
    tags: Iterable[str] = (),
    expense_id: Optional[str] = None,
) -> Tuple[Group, Expense]:
    expense_id = expense_id or new_id()
    if group.expense(expense_id) is not None:
        raise InvalidExpense(f"expense id {expense_id!r} already exists")

    expense = _build_expense(
        group,
        expense_id,
        title,
        amount,
        paid_by,
        participant_ids,
        policy,
        inputs,
        category,
        date,
        notes,
        description,
        tags,
        created_at=utc_now(),
    )
    return replace(group, expenses=group.expenses + (expense,), updated_at=utc_now()), expense


def _split_inputs(expense: Expense) -> Optional[Mapping[str, Any]]:
    # Rebuild the form inputs an existing expense was split with.
    if expense.split_type is SplitPolicy.PERCENTAGE:
        return {split.participant_id: split.percentage for split in expense.splits}
    if expense.split_type is SplitPolicy.EXACT:
        return {split.participant_id: split.amount for split in expense.splits}
    return None


def update_expense(group: Group, expense_id: str, **changes: Any) -> Tuple[Group, Expense]:
    """Re-validate and re-split an expense with ``changes`` applied.

    Accepts the keyword arguments of ``add_expense`` except ``expense_id``.
    The expense keeps its id, creation time and position in the group.
    """
    current = group.expense(expense_id)
    if current is None:
        raise ExpenseNotFound(f"no expense {expense_id!r}")

    allowed = {
        "title",
        "amount",
        "paid_by",
        "participant_ids",
        "policy",
        "inputs",
        "category",
        "date",
        "notes",
        "description",
        "tags",
    }
    unknown = set(changes) - allowed
    if unknown:
        raise InvalidExpense(f"unknown expense fields: {sorted(unknown)}")

    policy = SplitPolicy.parse(changes.get("policy", current.split_type))
    if "inputs" in changes:
        inputs = changes["inputs"]
    elif policy is current.split_type:
        inputs = _split_inputs(current)
    else:
        inputs = None

    expense = _build_expense(
        group,
        current.id,
        changes.get("title", current.title),
        changes.get("amount", current.amount),
        changes.get("paid_by", current.paid_by),
        changes.get("participant_ids", current.participant_ids),
        policy,
        inputs,
        changes.get("category", current.category),
        changes.get("date", current.date),
        changes.get("notes", current.notes),
        changes.get("description", current.description),
        changes.get("tags", current.tags),
        created_at=current.created_at,
    )
    expenses = tuple(expense if item.id == expense_id else item for item in group.expenses)
    return replace(group, expenses=expenses, updated_at=utc_now()), expense


def remove_expense(group: Group, expense_id: str) -> Group:
    if group.expense(expense_id) is None:
        raise ExpenseNotFound(f"no expense {expense_id!r}")
    expenses = tuple(expense for expense in group.expenses if expense.id != expense_id)
    return replace(group, expenses=expenses, updated_at=utc_now())
