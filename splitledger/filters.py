from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional

from .models import Category, Expense


@dataclass(frozen=True)
class ExpenseFilter:
    """Narrowing criteria for an expense list. ``None`` or blank means no constraint."""

    search: Optional[str] = None
    category: Optional[Category] = None
    member_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.category is not None and not isinstance(self.category, Category):
            object.__setattr__(self, "category", Category.parse(self.category))

    @classmethod
    def from_mapping(cls, params: Mapping[str, Any]) -> "ExpenseFilter":
        # The expense list UI sends "all" for an unset dropdown.
        category = params.get("category")
        if not category or category == "all":
            category = None
        member_id = params.get("member_id", params.get("memberId"))
        if not member_id or member_id == "all":
            member_id = None
        return cls(search=params.get("search") or None, category=category, member_id=member_id)

    @property
    def is_empty(self) -> bool:
        return not self.search and self.category is None and not self.member_id

    def matches(self, expense: Expense) -> bool:
        if self.search and self.search.lower() not in expense.title.lower():
            return False
        if self.category is not None and expense.category is not self.category:
            return False
        if self.member_id and not expense.involves(self.member_id):
            return False
        return True


def filter_expenses(expenses: Iterable[Expense], *filters: ExpenseFilter) -> List[Expense]:
    """Expenses matching every filter, in their original order."""
    return [expense for expense in expenses if all(f.matches(expense) for f in filters)]
