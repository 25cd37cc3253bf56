"""
Import / Export Blueprint — Excel round-trip of a module's test cases.

    POST /api/v1/modules/<id>/import     — multipart ``file`` (.xlsx)
    GET  /api/v1/modules/<id>/export     — .xlsx of every case and step
    GET  /api/v1/templates/download      — styled empty template
"""

import logging
from datetime import date

from flask import Blueprint, Response, jsonify, request

from app.middleware.permission_required import current_user, require_auth, require_role
from app.models.auth import ROLE_ADMIN, ROLE_BA, ROLE_QA
from app.services import access_service, import_export_service
from app.utils.errors import E, api_error, register_error_handlers
from app.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

import_export_bp = Blueprint("import_export", __name__, url_prefix="/api/v1")
register_error_handlers(import_export_bp)


def _xlsx_response(buf, filename):
    return Response(
        buf.getvalue(),
        mimetype=import_export_service.XLSX_MIMETYPE,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@import_export_bp.route("/modules/<int:module_id>/import", methods=["POST"])
@require_role(ROLE_ADMIN, ROLE_QA, ROLE_BA)
def import_test_cases(module_id):
    """Import test cases from an uploaded workbook into the module."""
    user = current_user()
    module = access_service.get_module(module_id, user)
    access_service.require_module_access(user, module)

    file = request.files.get("file")
    if file is None or not file.filename:
        return api_error(E.VALIDATION_REQUIRED, "File is required")

    result = import_export_service.import_test_cases(module, file)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(result), 200


@import_export_bp.route("/modules/<int:module_id>/export", methods=["GET"])
@require_auth
def export_module(module_id):
    user = current_user()
    module = access_service.get_module(module_id, user)
    access_service.require_module_access(user, module)
    buf = import_export_service.export_module(module)
    filename = f"Module{module.id}_TestCases_{date.today():%Y%m%d}.xlsx"
    return _xlsx_response(buf, filename)


@import_export_bp.route("/templates/download", methods=["GET"])
@require_auth
def download_template():
    return _xlsx_response(import_export_service.generate_template(), "test_case_import_template.xlsx")
