"""Flask REST API exposing the bookkeeping services."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, Optional

from flask import Flask, jsonify, request
from flask_cors import CORS

from books.config import Settings
from books.exceptions import (
    PersistenceError,
    RecordNotFoundError,
    UnauthenticatedError,
    ValidationError,
)
from books.services import build_services
from books.storage import RecordStore

USER_HEADER = "X-User-Id"


class HeaderAuth:
    """Reads the caller's user id from the current request's headers."""

    def __init__(self, allowed_users: FrozenSet[str] = frozenset()) -> None:
        self._allowed_users = allowed_users

    def current_user_id(self) -> Optional[str]:
        user_id = (request.headers.get(USER_HEADER) or "").strip()
        if not user_id:
            return None
        if self._allowed_users and user_id not in self._allowed_users:
            return None
        return user_id


def create_app(
    data_dir: Optional[Path] = None,
    settings: Optional[Settings] = None,
    store: Optional[RecordStore] = None,
) -> Flask:
    settings = settings or Settings()
    app = Flask(__name__)
    app.logger.setLevel(settings.log_level_value)

    if settings.is_development:
        CORS(app, resources={r"/*": {"origins": "*"}}, supports_credentials=True)
    elif settings.origin_list:
        CORS(app, resources={r"/*": {"origins": settings.origin_list}}, supports_credentials=True)
    else:
        CORS(app)

    if store is None:
        store = RecordStore(Path(data_dir or settings.data_dir))
    services = build_services(store, HeaderAuth(settings.user_allow_list), settings.tz)
    app.extensions["books.services"] = services

    def _success(payload: Any, status: int = 200):
        if status == 204:
            return ("", status)
        return jsonify(payload), status

    def _items(records: Iterable[Any]) -> Dict[str, Any]:
        return {"items": [record.to_dict() for record in records]}

    def _handle_error(exc: Exception, status: int, message: str):
        app.logger.error("%s: %s", message, exc)
        return jsonify({"error": message, "code": exc.code, "details": str(exc)}), status

    @app.errorhandler(UnauthenticatedError)
    def handle_unauthenticated(exc: UnauthenticatedError):
        return _handle_error(exc, 401, "Authentication required")

    @app.errorhandler(ValidationError)
    def handle_validation_error(exc: ValidationError):
        return _handle_error(exc, 400, "Validation error")

    @app.errorhandler(RecordNotFoundError)
    def handle_not_found(exc: RecordNotFoundError):
        return _handle_error(exc, 404, "Record not found")

    @app.errorhandler(PersistenceError)
    def handle_persistence_error(exc: PersistenceError):
        return _handle_error(exc, 500, "Persistence error")

    def _json_body() -> Dict[str, Any]:
        if not request.is_json:
            raise ValidationError("Request content must be application/json")
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError("Malformed JSON body")
        return data

    def _date_range() -> Dict[str, Optional[str]]:
        return {"date_from": request.args.get("date_from"), "date_to": request.args.get("date_to")}

    def _int_arg(name: str, default: int) -> int:
        raw = request.args.get(name)
        if raw in (None, ""):
            return default
        try:
            return int(raw)
        except ValueError as exc:
            raise ValidationError(f"{name} must be an integer") from exc

    def _arg(name: str) -> Optional[str]:
        value = request.args.get(name)
        return value if value not in (None, "") else None

    # Categories -----------------------------------------------------------
    @app.get("/categories")
    def list_categories():
        return _success(_items(services.categories.list()))

    @app.get("/categories/all")
    def list_all_categories():
        return _success(_items(services.categories.list_all()))

    @app.post("/categories")
    def create_category():
        payload = _json_body()
        category = services.categories.create(payload.get("name"), payload.get("description"))
        return _success(category.to_dict(), 201)

    @app.post("/categories/seed")
    def seed_categories():
        inserted = services.categories.seed_defaults()
        return _success({"inserted": inserted})

    @app.put("/categories/<category_id>")
    def update_category(category_id: str):
        payload = _json_body()
        category = services.categories.update(
            category_id, name=payload.get("name"), description=payload.get("description")
        )
        return _success(category.to_dict())

    @app.post("/categories/<category_id>/deactivate")
    def deactivate_category(category_id: str):
        category = services.categories.deactivate(category_id)
        return _success(category.to_dict())

    # Transactions ---------------------------------------------------------
    @app.get("/transactions")
    def list_transactions():
        transactions = services.transactions.list(
            request.args.get("type"),
            date_from=_arg("date_from"),
            date_to=_arg("date_to"),
            category=_arg("category"),
            search_text=_arg("search"),
            limit=_int_arg("limit", 100),
        )
        return _success(_items(transactions))

    @app.post("/transactions")
    def create_transaction():
        payload = _json_body()
        transaction = services.transactions.create(
            payload.get("type"),
            payload.get("amount"),
            payload.get("description"),
            payload.get("date"),
            category=payload.get("category"),
            notes=payload.get("notes"),
        )
        return _success(transaction.to_dict(), 201)

    @app.get("/transactions/<transaction_id>")
    def get_transaction(transaction_id: str):
        return _success(services.transactions.get(transaction_id).to_dict())

    @app.put("/transactions/<transaction_id>")
    def update_transaction(transaction_id: str):
        payload = _json_body()
        transaction = services.transactions.update(
            transaction_id,
            amount=payload.get("amount"),
            description=payload.get("description"),
            date=payload.get("date"),
            category=payload.get("category"),
            notes=payload.get("notes"),
        )
        return _success(transaction.to_dict())

    @app.delete("/transactions/<transaction_id>")
    def delete_transaction(transaction_id: str):
        services.transactions.delete(transaction_id)
        return _success({}, 204)

    # Shareholders ---------------------------------------------------------
    @app.get("/shareholders")
    def list_shareholders():
        return _success(_items(services.shareholders.list()))

    @app.get("/shareholders/all")
    def list_all_shareholders():
        return _success(_items(services.shareholders.list_all()))

    @app.get("/shareholders/total")
    def shareholder_total():
        return _success(services.shareholders.total_percentage().to_dict())

    @app.post("/shareholders")
    def create_shareholder():
        payload = _json_body()
        shareholder = services.shareholders.create(
            payload.get("name"), payload.get("email"), payload.get("share_percentage")
        )
        return _success(shareholder.to_dict(), 201)

    @app.get("/shareholders/<shareholder_id>")
    def get_shareholder(shareholder_id: str):
        return _success(services.shareholders.get(shareholder_id).to_dict())

    @app.put("/shareholders/<shareholder_id>")
    def update_shareholder(shareholder_id: str):
        payload = _json_body()
        shareholder = services.shareholders.update(
            shareholder_id,
            name=payload.get("name"),
            email=payload.get("email"),
            share_percentage=payload.get("share_percentage"),
        )
        return _success(shareholder.to_dict())

    @app.post("/shareholders/<shareholder_id>/deactivate")
    def deactivate_shareholder(shareholder_id: str):
        return _success(services.shareholders.deactivate(shareholder_id).to_dict())

    # Disbursements --------------------------------------------------------
    @app.get("/disbursements")
    def list_disbursements():
        entries = services.disbursements.list(
            date_from=_arg("date_from"),
            date_to=_arg("date_to"),
            shareholder_id=_arg("shareholder_id"),
            period=_arg("period"),
        )
        return _success(_items(entries))

    @app.post("/disbursements")
    def create_disbursement():
        payload = _json_body()
        disbursement = services.disbursements.create(
            payload.get("shareholder_id"),
            payload.get("amount"),
            payload.get("date"),
            payload.get("period"),
            notes=payload.get("notes"),
        )
        return _success(disbursement.to_dict(), 201)

    @app.get("/disbursements/<disbursement_id>")
    def get_disbursement(disbursement_id: str):
        return _success(services.disbursements.get(disbursement_id).to_dict())

    @app.delete("/disbursements/<disbursement_id>")
    def delete_disbursement(disbursement_id: str):
        services.disbursements.delete(disbursement_id)
        return _success({}, 204)

    # Reports --------------------------------------------------------------
    @app.get("/reports/metrics")
    def report_metrics():
        return _success(services.reports.metrics(**_date_range()).to_dict())

    @app.get("/reports/profit-summary")
    def report_profit_summary():
        return _success(services.reports.profit_summary(**_date_range()).to_dict())

    @app.get("/reports/trend")
    def report_trend():
        return _success(_items(services.reports.monthly_trend(**_date_range())))

    @app.get("/reports/breakdown")
    def report_breakdown():
        return _success(_items(services.reports.expense_breakdown(**_date_range())))

    @app.get("/reports/top-categories")
    def report_top_categories():
        entries = services.reports.top_expense_categories(
            **_date_range(), limit=_int_arg("limit", 5)
        )
        return _success(_items(entries))

    @app.get("/reports/shares")
    def report_shares():
        return _success(_items(services.reports.shareholder_shares(**_date_range())))

    return app
