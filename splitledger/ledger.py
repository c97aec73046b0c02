from __future__ import annotations

import heapq
import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional

from .errors import DanglingReference
from .models import ZERO, TOLERANCE, Balance, Expense, Group, Settlement

logger = logging.getLogger(__name__)


def calculate_balances(group: Group, expenses: Optional[Iterable[Expense]] = None) -> Dict[str, Decimal]:
    """Net position of every member over ``expenses`` (all of the group's by default).

    Positive means the member is owed money, negative means they owe. Every
    member appears, including those without expenses. An expense that names a
    member outside the group raises ``DanglingReference``.
    """
    balances: Dict[str, Decimal] = {member.id: ZERO for member in group.members}

    for expense in group.expenses if expenses is None else expenses:
        if expense.paid_by not in balances:
            raise DanglingReference(expense.paid_by, expense.id)
        balances[expense.paid_by] += expense.amount

        for split in expense.splits:
            if split.participant_id not in balances:
                raise DanglingReference(split.participant_id, expense.id)
            balances[split.participant_id] -= split.amount

    return balances


def balance_sheet(group: Group, balances: Mapping[str, Decimal]) -> List[Balance]:
    return [Balance(member.id, member.name, balances.get(member.id, ZERO)) for member in group.members]


def optimize_settlements(balances: Mapping[str, Decimal]) -> List[Settlement]:
    """Reduce balances to a short list of transfers.

    Greedy: the largest debtor pays the largest creditor ``min(debt, credit)``
    until one side runs out. Ties go to the smaller member id. Amounts within
    ``TOLERANCE`` of zero count as settled. The input mapping is not modified.
    """
    # Heap entries are (-magnitude, member_id) so the largest pops first.
    debtors = [(amount, member_id) for member_id, amount in balances.items() if amount < -TOLERANCE]
    creditors = [(-amount, member_id) for member_id, amount in balances.items() if amount > TOLERANCE]
    heapq.heapify(debtors)
    heapq.heapify(creditors)

    settlements: List[Settlement] = []
    while debtors and creditors:
        debt, debtor = heapq.heappop(debtors)
        credit, creditor = heapq.heappop(creditors)
        debt, credit = -debt, -credit

        amount = min(debt, credit)
        settlements.append(Settlement(debtor, creditor, amount))

        debt -= amount
        credit -= amount
        if debt > TOLERANCE:
            heapq.heappush(debtors, (-debt, debtor))
        if credit > TOLERANCE:
            heapq.heappush(creditors, (-credit, creditor))

    logger.debug("settled %d balances with %d transfers", len(balances), len(settlements))
    return settlements


def apply_settlements(balances: Mapping[str, Decimal], settlements: Iterable[Settlement]) -> Dict[str, Decimal]:
    """Balances after every settlement is paid."""
    result = dict(balances)
    for settlement in settlements:
        result[settlement.from_member] += settlement.amount
        result[settlement.to_member] -= settlement.amount
    return result


def settle_group(group: Group, expenses: Optional[Iterable[Expense]] = None) -> List[Settlement]:
    return optimize_settlements(calculate_balances(group, expenses))
