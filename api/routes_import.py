"""
api.routes_import - /api/v1/import endpoints.

Both endpoints take the same multipart payload: up to four CSV file
fields (organizations, projects, specimens, patients) plus an optional
``mode`` field (migration | project) in the form or query string.
"""

import logging

from flask import request, jsonify

from api import api_bp
from import_engine import (
    MIGRATION, IMPORT_MODES, ImportValidationFailed, TransactionFatalError,
    execute_import, preview_import,
)

logger = logging.getLogger(__name__)

CSV_MIMETYPES = {"text/csv", "application/csv", "application/vnd.ms-excel"}


def _is_csv(storage) -> bool:
    return (storage.filename.lower().endswith(".csv")
            or storage.mimetype in CSV_MIMETYPES)


def _read_upload():
    """Return (files, mode, error_response).  error_response is None on success."""
    mode = (request.form.get("mode") or request.args.get("mode") or MIGRATION).strip().lower()
    if mode not in IMPORT_MODES:
        return None, None, (jsonify({
            "error": f"unknown mode {mode!r}; expected one of {', '.join(IMPORT_MODES)}"
        }), 400)

    files = {}
    for field_name, storage in request.files.items():
        if not storage or not storage.filename:
            continue
        if not _is_csv(storage):
            return None, None, (jsonify({
                "error": f"{storage.filename}: only CSV files are allowed"
            }), 400)
        files[field_name] = (storage.filename, storage.read())

    if not files:
        return None, None, (jsonify({"error": "no CSV files in upload"}), 400)
    return files, mode, None


def _validation_failed(exc: ImportValidationFailed):
    return jsonify({
        "success": False,
        "error": str(exc),
        "files": exc.files,
        "errors": exc.errors,
    }), 422


@api_bp.route("/import/preview", methods=["POST"])
def api_import_preview():
    """
    POST /api/v1/import/preview

    Runs the full import against the database and rolls it back.
    """
    files, mode, error = _read_upload()
    if error:
        return error

    try:
        report = preview_import(files, mode)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    except ImportValidationFailed as exc:
        return _validation_failed(exc)
    except TransactionFatalError as exc:
        logger.error(f"Preview failed during {exc.stage}: {exc}")
        return jsonify({
            "success": False,
            "error": f"Preview failed: {exc}",
            "stage": exc.stage,
        }), 500

    return jsonify(report.to_dict())


@api_bp.route("/import/execute", methods=["POST"])
def api_import_execute():
    """
    POST /api/v1/import/execute

    200 when committed, 422 when a file has no valid rows, 500 with a
    diagnostic ``details`` object when the run was rolled back or
    nothing was persisted.
    """
    files, mode, error = _read_upload()
    if error:
        return error

    generated_by = (request.form.get("generated_by") or "api").strip()
    try:
        report = execute_import(files, mode, generated_by=generated_by)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    except ImportValidationFailed as exc:
        return _validation_failed(exc)

    return jsonify(report.to_dict()), (200 if report.success else 500)
