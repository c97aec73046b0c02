from __future__ import annotations

from typing import Any, Dict, List, Optional

import click
from flask import Flask, Response, jsonify, request
from flask_cors import CORS

from . import groups as group_ops
from .config import config
from .db import Database
from .errors import InvalidPayload, LedgerError, RepositoryError
from .filters import ExpenseFilter, filter_expenses
from .ledger import balance_sheet, calculate_balances, optimize_settlements
from .models import ZERO, Expense, Group, Split, export_app_data, import_app_data, quantize_cents
from .reports import category_totals, expenses_to_csv, member_summary
from .repository import GroupRepository, InMemoryGroupRepository, MySQLGroupRepository
from .splits import compute, validate

EXPENSE_FIELDS = {
    "title": "title",
    "amount": "amount",
    "paid_by": "paid_by",
    "participant_ids": "participant_ids",
    "split_type": "policy",
    "inputs": "inputs",
    "category": "category",
    "date": "date",
    "notes": "notes",
    "description": "description",
    "tags": "tags",
}


def create_app(config_object=None, repository: Optional[GroupRepository] = None) -> Flask:
    settings = config_object or config

    app = Flask(__name__)
    app.config["SECRET_KEY"] = settings.SECRET_KEY
    app.logger.setLevel(settings.LOG_LEVEL)

    CORS(app, resources={r"/api/*": {"origins": settings.CORS_ORIGINS}})

    if repository is None:
        repository = build_repository(settings)
    app.extensions["splitledger.repository"] = repository

    register_error_handlers(app)
    register_routes(app, repository)
    register_commands(app, repository)
    return app


def build_repository(settings) -> GroupRepository:
    if settings.STORAGE_BACKEND == "mysql":
        return MySQLGroupRepository(
            Database(settings),
            retries=settings.REPOSITORY_RETRIES,
            backoff=settings.REPOSITORY_BACKOFF,
        )
    if settings.STORAGE_BACKEND == "memory":
        return InMemoryGroupRepository()
    raise ValueError(f"unknown STORAGE_BACKEND {settings.STORAGE_BACKEND!r}")


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(LedgerError)
    def handle_ledger_error(exc: LedgerError):
        if isinstance(exc, RepositoryError):
            app.logger.error("storage failure on %s %s: %s", request.method, request.path, exc)
        else:
            app.logger.warning("rejected %s %s: %s", request.method, request.path, exc)
        return jsonify({"error": exc.code, "message": str(exc)}), exc.status


def register_commands(app: Flask, repository: GroupRepository) -> None:
    @app.cli.command("init-db")
    def init_db():
        """Create the MySQL table used by the mysql storage backend."""
        if not isinstance(repository, MySQLGroupRepository):
            click.echo("STORAGE_BACKEND is not mysql; nothing to do")
            return
        repository.database.ensure_schema()
        click.echo("ledger_groups table ready")


def register_routes(app: Flask, repository: GroupRepository) -> None:
    @app.get("/api")
    def health_check():
        return jsonify({"status": "healthy"})

    @app.get("/api/groups")
    def list_groups():
        groups = repository.load_all()
        return jsonify([{"id": g.id, "name": g.name, "description": g.description} for g in groups])

    @app.post("/api/groups")
    def create_group():
        payload = _payload()
        group = group_ops.create_group(payload.get("name"), payload.get("description"))
        repository.save(group)
        app.logger.info("created group %s", group.id)
        return jsonify(_group_json(group)), 201

    @app.get("/api/groups/<group_id>")
    def get_group(group_id: str):
        return jsonify(_group_json(repository.load(group_id)))

    @app.patch("/api/groups/<group_id>")
    def update_group(group_id: str):
        payload = _payload()
        changes = {key: payload[key] for key in ("name", "description") if key in payload}
        group = group_ops.update_group(repository.load(group_id), **changes)
        repository.save(group)
        return jsonify(_group_json(group))

    @app.post("/api/groups/<group_id>/members")
    def add_member(group_id: str):
        payload = _payload()
        fields = {key: payload[key] for key in ("nickname", "email", "phone", "avatar", "notes") if key in payload}
        group, member = group_ops.add_member(
            repository.load(group_id),
            payload.get("name"),
            allow_duplicate_name=bool(payload.get("allow_duplicate_name")),
            **fields,
        )
        repository.save(group)
        return jsonify(member.to_dict()), 201

    @app.delete("/api/groups/<group_id>/members/<member_id>")
    def remove_member(group_id: str, member_id: str):
        group = group_ops.remove_member(repository.load(group_id), member_id)
        repository.save(group)
        return jsonify({"status": "deleted"})

    @app.get("/api/groups/<group_id>/expenses")
    def list_expenses(group_id: str):
        group = repository.load(group_id)
        expenses = filter_expenses(group.expenses, ExpenseFilter.from_mapping(request.args))
        return jsonify([_expense_json(expense) for expense in expenses])

    @app.post("/api/groups/<group_id>/expenses")
    def add_expense(group_id: str):
        kwargs = _expense_kwargs(_payload())
        for required in ("title", "amount", "paid_by", "participant_ids"):
            if required not in kwargs:
                raise InvalidPayload(f"missing field {required!r}")
        group, expense = group_ops.add_expense(repository.load(group_id), **kwargs)
        repository.save(group)
        return jsonify(_expense_json(expense)), 201

    @app.put("/api/groups/<group_id>/expenses/<expense_id>")
    def update_expense(group_id: str, expense_id: str):
        kwargs = _expense_kwargs(_payload())
        group, expense = group_ops.update_expense(repository.load(group_id), expense_id, **kwargs)
        repository.save(group)
        return jsonify(_expense_json(expense))

    @app.delete("/api/groups/<group_id>/expenses/<expense_id>")
    def remove_expense(group_id: str, expense_id: str):
        group = group_ops.remove_expense(repository.load(group_id), expense_id)
        repository.save(group)
        return jsonify({"status": "deleted"})

    @app.post("/api/splits/preview")
    def preview_split():
        payload = _payload()
        args = (
            payload.get("amount"),
            _participants(payload.get("participant_ids")),
            payload.get("split_type", "equal"),
            payload.get("inputs"),
        )
        splits = compute(*args)
        return jsonify({"splits": [_split_json(split) for split in splits], "valid": validate(*args)})

    @app.get("/api/groups/<group_id>/balances")
    def get_balances(group_id: str):
        group = repository.load(group_id)
        expenses = filter_expenses(group.expenses, ExpenseFilter.from_mapping(request.args))
        balances = calculate_balances(group, expenses)
        settlements = optimize_settlements(balances)
        names = group.member_names()
        return jsonify(
            {
                "balances": [balance.to_dict() for balance in balance_sheet(group, balances)],
                "settlements": [settlement.to_dict(names) for settlement in settlements],
            }
        )

    @app.get("/api/groups/<group_id>/reports")
    def get_reports(group_id: str):
        group = repository.load(group_id)
        expenses = filter_expenses(group.expenses, ExpenseFilter.from_mapping(request.args))
        return jsonify(
            {
                "total": _money(sum((expense.amount for expense in expenses), ZERO)),
                "categories": [total.to_dict() for total in category_totals(expenses)],
                "members": [summary.to_dict() for summary in member_summary(group, expenses)],
            }
        )

    @app.get("/api/groups/<group_id>/export.csv")
    def export_csv(group_id: str):
        group = repository.load(group_id)
        expenses = filter_expenses(group.expenses, ExpenseFilter.from_mapping(request.args))
        return Response(
            expenses_to_csv(group, expenses),
            mimetype="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{group.id}-expenses.csv"'},
        )

    @app.get("/api/export")
    def export_json():
        return jsonify(export_app_data(repository.load_all()))

    @app.post("/api/import")
    def import_json():
        groups = import_app_data(_payload())
        for group in groups:
            repository.save(group)
        app.logger.info("imported %d group(s)", len(groups))
        return jsonify({"imported": [group.id for group in groups]}), 201


def _payload() -> Dict[str, Any]:
    payload = request.get_json(force=True, silent=True)
    if not isinstance(payload, dict):
        raise InvalidPayload("request body must be a JSON object")
    return payload


def _participants(value: Any) -> List[str]:
    if not isinstance(value, list):
        raise InvalidPayload("participant_ids must be a list")
    return [str(item) for item in value]


def _expense_kwargs(payload: Dict[str, Any]) -> Dict[str, Any]:
    kwargs = {EXPENSE_FIELDS[key]: value for key, value in payload.items() if key in EXPENSE_FIELDS}
    if "participant_ids" in kwargs:
        kwargs["participant_ids"] = _participants(kwargs["participant_ids"])
    if "paid_by" in kwargs and kwargs["paid_by"] is not None:
        kwargs["paid_by"] = str(kwargs["paid_by"])
    if "tags" in kwargs and not isinstance(kwargs["tags"], list):
        raise InvalidPayload("tags must be a list")
    if "inputs" in kwargs and kwargs["inputs"] is not None and not isinstance(kwargs["inputs"], dict):
        raise InvalidPayload("inputs must be an object")
    return kwargs


def _money(value) -> float:
    return float(quantize_cents(value))


def _split_json(split: Split) -> Dict[str, Any]:
    data = split.to_dict()
    data["amount"] = _money(split.amount)
    if split.percentage is not None:
        data["percentage"] = float(split.percentage)
    return data


def _expense_json(expense: Expense) -> Dict[str, Any]:
    data = expense.to_dict()
    data["amount"] = _money(expense.amount)
    data["splits"] = [_split_json(split) for split in expense.splits]
    return data


def _group_json(group: Group) -> Dict[str, Any]:
    data = group.to_dict()
    data["expenses"] = [_expense_json(expense) for expense in group.expenses]
    return data


app = create_app()


if __name__ == "__main__":
    app.run(debug=True)
