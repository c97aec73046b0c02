from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .errors import (
    DanglingReference,
    InvalidCategory,
    InvalidGroup,
    InvalidSplit,
    InvalidSplitPolicy,
)

TOLERANCE = Decimal("0.01")
CENT = Decimal("0.01")
ZERO = Decimal("0")
DATA_VERSION = "1.0"


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValueError("Cannot convert bool to Decimal")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise ValueError(f"Cannot convert {value!r} to Decimal") from None
    else:
        raise ValueError("Cannot convert value to Decimal")
    if not result.is_finite():
        raise ValueError(f"{value!r} is not a finite amount")
    return result


def quantize_cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def amounts_close(a: Decimal, b: Decimal, tolerance: Decimal = TOLERANCE) -> bool:
    """True when the difference is at most ``tolerance``; exactly one cent still counts."""
    return abs(a - b) <= tolerance


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if not value:
        return utc_now()
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        # Browser timestamps carry milliseconds, which older fromisoformat rejects.
        return datetime.strptime(text, "%Y-%m-%dT%H:%M:%S.%f%z")


def parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        return utc_now().date()
    # Full ISO timestamps are accepted; only the calendar day is kept.
    return date.fromisoformat(str(value)[:10])


def _optional_decimal(value: Any) -> Optional[Decimal]:
    return None if value is None else to_decimal(value)


class SplitPolicy(str, Enum):
    EQUAL = "equal"
    PERCENTAGE = "percentage"
    EXACT = "exact"

    @classmethod
    def parse(cls, value: Any) -> "SplitPolicy":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidSplitPolicy(f"unknown split type {value!r}") from None


class Category(str, Enum):
    FOOD = "Food & Dining"
    TRANSPORTATION = "Transportation"
    ACCOMMODATION = "Accommodation"
    ENTERTAINMENT = "Entertainment"
    UTILITIES = "Utilities"
    SHOPPING = "Shopping"
    HEALTHCARE = "Healthcare"
    TRAVEL = "Travel"
    OTHER = "Other"

    @classmethod
    def parse(cls, value: Any) -> "Category":
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        for category in cls:
            if text in (category.value.lower(), category.name.lower()):
                return category
        if text in CATEGORY_ALIASES:
            return cls(CATEGORY_ALIASES[text])
        raise InvalidCategory(f"unknown category {value!r}")


# Budget category names that map onto an expense category.
CATEGORY_ALIASES = {
    "food & drinks": "Food & Dining",
    "groceries": "Food & Dining",
    "bills & utilities": "Utilities",
    "health": "Healthcare",
}


@dataclass(frozen=True)
class Member:
    id: str
    name: str
    nickname: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    avatar: Optional[str] = None
    notes: Optional[str] = None

    OPTIONAL_FIELDS = ("nickname", "email", "phone", "avatar", "notes")

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "name": self.name}
        for name in self.OPTIONAL_FIELDS:
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Member":
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            **{name: data.get(name) for name in cls.OPTIONAL_FIELDS},
        )


@dataclass(frozen=True)
class Split:
    participant_id: str
    amount: Decimal
    percentage: Optional[Decimal] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"participantId": self.participant_id, "amount": str(self.amount)}
        if self.percentage is not None:
            data["percentage"] = str(self.percentage)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Split":
        # Older exports named the participant "memberId".
        participant_id = data.get("participantId", data.get("memberId"))
        if participant_id is None:
            raise KeyError("participantId")
        return cls(
            participant_id=str(participant_id),
            amount=to_decimal(data["amount"]),
            percentage=_optional_decimal(data.get("percentage")),
        )


@dataclass(frozen=True)
class Expense:
    id: str
    title: str
    amount: Decimal
    paid_by: str
    splits: Tuple[Split, ...]
    category: Category = Category.OTHER
    date: date = field(default_factory=lambda: utc_now().date())
    split_type: SplitPolicy = SplitPolicy.EQUAL
    notes: Optional[str] = None
    description: Optional[str] = None
    tags: Tuple[str, ...] = ()
    created_at: datetime = field(default_factory=utc_now)

    @property
    def participant_ids(self) -> List[str]:
        return [split.participant_id for split in self.splits]

    def involves(self, member_id: str) -> bool:
        return self.paid_by == member_id or member_id in self.participant_ids

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "amount": str(self.amount),
            "paidBy": self.paid_by,
            "splits": [split.to_dict() for split in self.splits],
            "splitType": self.split_type.value,
            "category": self.category.value,
            "date": self.date.isoformat(),
            "tags": list(self.tags),
            "createdAt": self.created_at.isoformat(),
        }
        if self.notes is not None:
            data["notes"] = self.notes
        if self.description is not None:
            data["description"] = self.description
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Expense":
        splits = data.get("splits", data.get("splitBetween")) or []
        return cls(
            id=str(data["id"]),
            title=str(data["title"]),
            amount=to_decimal(data["amount"]),
            paid_by=str(data["paidBy"]),
            splits=tuple(Split.from_dict(item) for item in splits),
            category=Category.parse(data.get("category") or Category.OTHER),
            date=parse_date(data.get("date")),
            split_type=SplitPolicy.parse(data.get("splitType") or SplitPolicy.EXACT),
            notes=data.get("notes"),
            description=data.get("description"),
            tags=tuple(data.get("tags") or ()),
            created_at=parse_datetime(data.get("createdAt")),
        )


@dataclass(frozen=True)
class Group:
    id: str
    name: str
    members: Tuple[Member, ...] = ()
    expenses: Tuple[Expense, ...] = ()
    description: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def member_ids(self) -> List[str]:
        return [member.id for member in self.members]

    def member(self, member_id: str) -> Optional[Member]:
        for member in self.members:
            if member.id == member_id:
                return member
        return None

    def expense(self, expense_id: str) -> Optional[Expense]:
        for expense in self.expenses:
            if expense.id == expense_id:
                return expense
        return None

    def member_names(self) -> Dict[str, str]:
        return {member.id: member.name for member in self.members}

    def check_integrity(self) -> None:
        """Raise if members collide or an expense points at a missing member."""
        seen = set()
        for member in self.members:
            if member.id in seen:
                raise InvalidGroup(f"duplicate member id {member.id!r}")
            seen.add(member.id)

        expense_ids = set()
        for expense in self.expenses:
            if expense.id in expense_ids:
                raise InvalidGroup(f"duplicate expense id {expense.id!r}")
            expense_ids.add(expense.id)
            check_expense_references(expense, seen)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "members": [member.to_dict() for member in self.members],
            "expenses": [expense.to_dict() for expense in self.expenses],
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }
        if self.description is not None:
            data["description"] = self.description
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Group":
        try:
            created_at = parse_datetime(data.get("createdAt"))
            return cls(
                id=str(data["id"]),
                name=str(data["name"]),
                members=tuple(Member.from_dict(item) for item in data.get("members") or ()),
                expenses=tuple(Expense.from_dict(item) for item in data.get("expenses") or ()),
                description=data.get("description"),
                created_at=created_at,
                updated_at=parse_datetime(data.get("updatedAt") or created_at),
            )
        except (KeyError, TypeError, ValueError) as exc:
            if isinstance(exc, InvalidGroup):
                raise
            raise InvalidGroup(f"malformed group payload: {exc}") from exc


def check_expense_references(expense: Expense, member_ids: Iterable[str]) -> None:
    known = set(member_ids)
    if expense.paid_by not in known:
        raise DanglingReference(expense.paid_by, expense.id)
    seen = set()
    for split in expense.splits:
        if split.participant_id not in known:
            raise DanglingReference(split.participant_id, expense.id)
        if split.participant_id in seen:
            raise InvalidSplit(f"duplicate participant {split.participant_id!r}")
        seen.add(split.participant_id)


@dataclass(frozen=True)
class Balance:
    member_id: str
    name: str
    amount: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "memberId": self.member_id,
            "name": self.name,
            "amount": float(quantize_cents(self.amount)),
        }


@dataclass(frozen=True)
class Settlement:
    """``from_member`` should pay ``to_member`` the given amount."""

    from_member: str
    to_member: str
    amount: Decimal

    def to_dict(self, names: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "from": self.from_member,
            "to": self.to_member,
            "amount": float(quantize_cents(self.amount)),
        }
        if names is not None:
            data["fromName"] = names.get(self.from_member, "Unknown")
            data["toName"] = names.get(self.to_member, "Unknown")
        return data


def export_app_data(groups: Iterable[Group]) -> Dict[str, Any]:
    return {"version": DATA_VERSION, "groups": [group.to_dict() for group in groups]}


def import_app_data(payload: Any) -> List[Group]:
    if isinstance(payload, dict) and "groups" in payload:
        items = payload["groups"]
    elif isinstance(payload, dict):
        # A bare group, as the single-group store wrote it.
        items = [payload]
    else:
        raise InvalidGroup("expected an object with a 'groups' list")
    if not isinstance(items, list):
        raise InvalidGroup("'groups' must be a list")

    groups = []
    for item in items:
        if not isinstance(item, dict):
            raise InvalidGroup("every group must be an object")
        group = Group.from_dict(item)
        group.check_integrity()
        groups.append(group)
    return groups
