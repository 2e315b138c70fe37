"""
routes/admin.py — Operator endpoints.

Endpoints:
  POST /admin/sweep-orphans → 200  remove orphaned records (admins only)
"""

from __future__ import annotations

from flask import Blueprint, jsonify

from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_admin
from backend.app.services import consistency_service

admin_bp = Blueprint("admin", __name__)


@admin_bp.route("/sweep-orphans", methods=["POST"])
@require_admin
def sweep_orphans():
    """
    POST /admin/sweep-orphans — Runs the orphan sweep to a fixed point.
    Each step commits on its own inside the service.
    """
    removed = consistency_service.sweep_orphans(db.session)
    return jsonify({"data": {"removed_counts": removed}, "warnings": []}), 200
