"""Serve avatars stored by the local object storage (fallback mode only)."""

from flask import Blueprint, abort, send_from_directory

from bizdesk.controllers.routes._decorators import get_platform

uploads_bp = Blueprint("uploads", __name__)


@uploads_bp.route("/uploads/<path:filename>")
def uploaded_file(filename):
    storage = get_platform().local_storage
    if storage is None:
        abort(404)
    return send_from_directory(storage.root_dir, filename, max_age=3600)
