"""
Blueprint do funil de leads.

Rotas:
    - GET    /api/clients
    - POST   /api/clients
    - PATCH  /api/clients/<id>        (gestores ou responsavel)
    - DELETE /api/clients/<id>        (gestores ou responsavel)
    - POST   /api/clients/<id>/claim  (primeiro a gravar vence; 409 se perdeu)
    - POST   /api/clients/<id>/status (gestor de projectos ou responsavel)
"""

from flask import Blueprint, g, jsonify

from bizdesk.controllers.routes._decorators import json_body, ready_required
from bizdesk.models.entities import Client
from bizdesk.services.store import ValidationError

clients_bp = Blueprint("clients", __name__, url_prefix="/api/clients")


@clients_bp.route("", methods=["GET"])
@ready_required
def list_clients():
    return jsonify(g.workspace.clients.snapshot())


@clients_bp.route("", methods=["POST"])
@ready_required
def create_client():
    changes = Client.changes_from_payload(json_body())
    client = Client(name=changes.pop("name", ""), **changes)
    return jsonify(g.workspace.clients.create(client).to_dict()), 201


@clients_bp.route("/<client_id>", methods=["PATCH"])
@ready_required
def update_client(client_id):
    changes = Client.changes_from_payload(json_body())
    if not changes:
        raise ValidationError("nothing to update")
    return jsonify(g.workspace.clients.update(client_id, changes, g.profile).to_dict())


@clients_bp.route("/<client_id>", methods=["DELETE"])
@ready_required
def delete_client(client_id):
    g.workspace.clients.delete(client_id, g.profile)
    return ("", 204)


@clients_bp.route("/<client_id>/claim", methods=["POST"])
@ready_required
def claim_client(client_id):
    return jsonify(g.workspace.clients.claim(client_id, g.profile).to_dict())


@clients_bp.route("/<client_id>/status", methods=["POST"])
@ready_required
def change_status(client_id):
    status = json_body().get("status")
    if not status:
        raise ValidationError("status is required")
    return jsonify(g.workspace.clients.change_status(client_id, status, g.profile).to_dict())
