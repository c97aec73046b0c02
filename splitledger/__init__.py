"""Shared group expense ledger: splits, balances and settlements."""
from .errors import (
    DanglingReference,
    EmptyParticipants,
    InvalidSplit,
    LedgerError,
    MemberInUse,
    NonPositiveAmount,
)
from .filters import ExpenseFilter, filter_expenses
from .ledger import apply_settlements, calculate_balances, optimize_settlements
from .models import Balance, Category, Expense, Group, Member, Settlement, Split, SplitPolicy
from .splits import build_splits, compute, validate

__version__ = "0.1.0"
