from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from .errors import DanglingReference
from .models import ZERO, Category, Expense, Group, quantize_cents

CSV_HEADERS = [
    "Group Name",
    "Expense Title",
    "Description",
    "Amount",
    "Paid By",
    "Date",
    "Category",
    "Split Type",
    "Split Details",
]


@dataclass(frozen=True)
class CategoryTotal:
    category: Category
    total: Decimal
    percentage: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "total": float(quantize_cents(self.total)),
            "percentage": float(self.percentage.quantize(Decimal("0.1"))),
        }


@dataclass(frozen=True)
class MemberSummary:
    member_id: str
    name: str
    paid: Decimal
    owes: Decimal

    @property
    def net(self) -> Decimal:
        return self.paid - self.owes

    def to_dict(self) -> Dict[str, Any]:
        return {
            "memberId": self.member_id,
            "name": self.name,
            "paid": float(quantize_cents(self.paid)),
            "owes": float(quantize_cents(self.owes)),
            "net": float(quantize_cents(self.net)),
        }


def category_totals(expenses: Iterable[Expense]) -> List[CategoryTotal]:
    totals: Dict[Category, Decimal] = {}
    for expense in expenses:
        totals[expense.category] = totals.get(expense.category, ZERO) + expense.amount

    grand_total = sum(totals.values(), ZERO)
    result = []
    for category in Category:
        if category not in totals:
            continue
        total = totals[category]
        percentage = total * 100 / grand_total if grand_total else ZERO
        result.append(CategoryTotal(category, total, percentage))
    return result


def member_summary(group: Group, expenses: Optional[Iterable[Expense]] = None) -> List[MemberSummary]:
    paid: Dict[str, Decimal] = {member.id: ZERO for member in group.members}
    owes: Dict[str, Decimal] = dict(paid)

    for expense in group.expenses if expenses is None else expenses:
        if expense.paid_by not in paid:
            raise DanglingReference(expense.paid_by, expense.id)
        paid[expense.paid_by] += expense.amount
        for split in expense.splits:
            if split.participant_id not in owes:
                raise DanglingReference(split.participant_id, expense.id)
            owes[split.participant_id] += split.amount

    return [MemberSummary(m.id, m.name, paid[m.id], owes[m.id]) for m in group.members]


def expenses_to_csv(group: Group, expenses: Optional[Iterable[Expense]] = None) -> str:
    names = group.member_names()
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)

    for expense in group.expenses if expenses is None else expenses:
        details = "; ".join(
            f"{names.get(split.participant_id, 'Unknown')}: {quantize_cents(split.amount)}"
            for split in expense.splits
        )
        writer.writerow(
            [
                group.name,
                expense.title,
                expense.description or "",
                str(quantize_cents(expense.amount)),
                names.get(expense.paid_by, "Unknown"),
                expense.date.isoformat(),
                expense.category.value,
                expense.split_type.value,
                details,
            ]
        )
    return buffer.getvalue()
