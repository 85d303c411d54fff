"""
Blueprint do calendario.

Rotas:
    - GET    /api/events
    - POST   /api/events (o criador vem da sessao)
    - PATCH  /api/events/<id>
    - DELETE /api/events/<id>
"""

from flask import Blueprint, g, jsonify

from bizdesk.controllers.routes._decorators import json_body, ready_required
from bizdesk.models.entities import CalendarEvent
from bizdesk.services.store import ValidationError

events_bp = Blueprint("events", __name__, url_prefix="/api/events")


@events_bp.route("", methods=["GET"])
@ready_required
def list_events():
    return jsonify(g.workspace.events.snapshot())


@events_bp.route("", methods=["POST"])
@ready_required
def create_event():
    changes = CalendarEvent.changes_from_payload(json_body())
    event = CalendarEvent(title=changes.pop("title", ""), **changes)
    created = g.workspace.events.create(event, created_by=g.profile.id)
    return jsonify(created.to_dict()), 201


@events_bp.route("/<event_id>", methods=["PATCH"])
@ready_required
def update_event(event_id):
    changes = CalendarEvent.changes_from_payload(json_body())
    if not changes:
        raise ValidationError("nothing to update")
    return jsonify(g.workspace.events.update(event_id, changes).to_dict())


@events_bp.route("/<event_id>", methods=["DELETE"])
@ready_required
def delete_event(event_id):
    g.workspace.events.delete(event_id)
    return ("", 204)
