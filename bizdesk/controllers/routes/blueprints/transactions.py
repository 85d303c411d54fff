"""
Blueprint da gestao financeira (restrito ao Gestor de Projectos).

Rotas:
    - GET    /api/transactions            (lista + totais)
    - GET    /api/transactions/categories (sugestoes por tipo)
    - POST   /api/transactions
    - PATCH  /api/transactions/<id>
    - DELETE /api/transactions/<id>
"""

from flask import Blueprint, g, jsonify, request

from bizdesk.constants import UserRole
from bizdesk.controllers.routes._decorators import json_body, roles_required
from bizdesk.models.entities import Transaction
from bizdesk.services.finance import category_suggestions
from bizdesk.services.store import ValidationError

transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")

finance_access = roles_required(UserRole.PROJECT_MANAGER)


@transactions_bp.route("", methods=["GET"])
@finance_access
def list_transactions():
    data = g.workspace.transactions.snapshot()
    data["summary"] = g.workspace.transactions.summary().to_dict()
    return jsonify(data)


@transactions_bp.route("/categories", methods=["GET"])
@finance_access
def categories():
    transaction_type = request.args.get("type")
    try:
        return jsonify(category_suggestions(transaction_type))
    except ValueError:
        raise ValidationError(f"invalid type {transaction_type!r}") from None


@transactions_bp.route("", methods=["POST"])
@finance_access
def create_transaction():
    changes = Transaction.changes_from_payload(json_body())
    transaction = Transaction(
        description=changes.pop("description", ""),
        value=changes.pop("value", None),
        type=changes.pop("type", None),
        **changes,
    )
    return jsonify(g.workspace.transactions.create(transaction).to_dict()), 201


@transactions_bp.route("/<transaction_id>", methods=["PATCH"])
@finance_access
def update_transaction(transaction_id):
    changes = Transaction.changes_from_payload(json_body())
    if not changes:
        raise ValidationError("nothing to update")
    return jsonify(g.workspace.transactions.update(transaction_id, changes).to_dict())


@transactions_bp.route("/<transaction_id>", methods=["DELETE"])
@finance_access
def delete_transaction(transaction_id):
    g.workspace.transactions.delete(transaction_id)
    return ("", 204)
