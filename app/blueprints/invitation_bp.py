"""
Invitation Blueprint — invite users into an organization.

  POST /api/v1/invitations          — ADMIN: invite an e-mail with a role
  GET  /api/v1/invitations/<token>  — public: invitation details (join page)
  POST /api/v1/invitations/accept   — public: create the invited account
"""

from flask import Blueprint, jsonify, request

from app.middleware.permission_required import current_user, require_role
from app.models.auth import ROLE_ADMIN
from app.services import invitation_service
from app.utils.errors import register_error_handlers

invitation_bp = Blueprint("invitation", __name__, url_prefix="/api/v1/invitations")
register_error_handlers(invitation_bp)


@invitation_bp.route("", methods=["POST"])
@require_role(ROLE_ADMIN)
def create_invitation():
    """Body: { "email": "...", "role": "QA" }"""
    data = request.get_json(silent=True) or {}
    invitation = invitation_service.create_invitation(
        current_user(), data.get("email") or "", data.get("role") or "",
    )
    return jsonify({
        "message": "Invitation sent successfully",
        "invitation": invitation.to_dict(),
    }), 201


@invitation_bp.route("/accept", methods=["POST"])
def accept_invitation():
    """
    Accept an invitation and create the account.

    Body: { "token": "...", "username": "...", "password": "...", "full_name": "..." }
    """
    data = request.get_json(silent=True) or {}
    user = invitation_service.accept_invitation(
        data.get("token") or "",
        data.get("username") or "",
        data.get("password") or "",
        data.get("full_name"),
    )
    return jsonify({
        "message": "Invitation accepted successfully",
        "user": user.to_dict(include_roles=True),
    }), 201


@invitation_bp.route("/<token>", methods=["GET"])
def get_invitation(token):
    invitation = invitation_service.get_valid_invitation(token)
    return jsonify(invitation.to_dict()), 200
