"""Error taxonomy for the ledger engine.

Every error carries a snake_case ``code`` (the value the HTTP layer puts in
``{"error": ...}``) and the HTTP ``status`` it maps to.
"""


class LedgerError(Exception):
    code = "ledger_error"
    status = 400

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)


class ValidationError(LedgerError, ValueError):
    """Rejected input; nothing reached stored state."""


class NonPositiveAmount(ValidationError):
    code = "invalid_amount"


class EmptyParticipants(ValidationError):
    code = "missing_participants"


class InvalidSplit(ValidationError):
    code = "invalid_split"


class InvalidSplitPolicy(ValidationError):
    code = "invalid_split_type"


class InvalidCategory(ValidationError):
    code = "invalid_category"


class InvalidMember(ValidationError):
    code = "invalid_member"


class InvalidExpense(ValidationError):
    code = "invalid_expense"


class InvalidGroup(ValidationError):
    code = "invalid_group"


class DanglingReference(ValidationError):
    code = "dangling_reference"

    def __init__(self, member_id: str, expense_id: str = "") -> None:
        self.member_id = member_id
        self.expense_id = expense_id
        where = f" in expense {expense_id}" if expense_id else ""
        super().__init__(f"unknown member {member_id!r}{where}")


class MemberNotFound(LedgerError, LookupError):
    code = "member_not_found"
    status = 404


class ExpenseNotFound(LedgerError, LookupError):
    code = "expense_not_found"
    status = 404


class GroupNotFound(LedgerError, LookupError):
    code = "group_not_found"
    status = 404


class DuplicateMemberName(ValidationError):
    code = "member_name_in_use"
    status = 409


class MemberInUse(ValidationError):
    code = "member_in_use"
    status = 409

    def __init__(self, member_id: str, expense_ids=()) -> None:
        self.member_id = member_id
        self.expense_ids = tuple(expense_ids)
        super().__init__(
            f"member {member_id!r} is referenced by {len(self.expense_ids)} expense(s)"
        )


class RepositoryError(LedgerError, RuntimeError):
    code = "storage_unavailable"
    status = 503


class InvalidPayload(ValidationError):
    code = "invalid_payload"
