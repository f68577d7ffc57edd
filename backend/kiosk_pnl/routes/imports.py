# Overview: Flask API routes for imports; parses uploads and returns JSON responses.

"""
Import Routes

Supports CSV and Excel (.xlsx) uploads. Preview is side-effect free;
the import endpoint runs detection, mapping and the atomic merge.
"""

import json

from flask import Blueprint, current_app, jsonify, request

from ..services import import_service
from ..services.batch_reader import BatchFormatError
from ..services.import_service import IngestError
from ..services.import_workflow import WorkflowError
from ..services.manual_mapping import MANUAL_FIELDS, MappingError
from ..services.sync_service import SyncError


imports_bp = Blueprint("imports", __name__, url_prefix="/api/imports")


def _uploaded_file():
    if "file" not in request.files:
        return None, None
    file = request.files["file"]
    return file.filename or "", file.stream.read()


@imports_bp.get("/presets")
def presets_route():
    return jsonify({
        "presets": import_service.list_presets(),
        "manual_fields": [{"key": key, "label": label} for key, label in MANUAL_FIELDS],
    })


@imports_bp.post("/preview")
def preview_route():
    file_name, data = _uploaded_file()
    if file_name is None:
        return jsonify({"error": "file is required"}), 400
    try:
        result = import_service.preview_file(
            file_name,
            data,
            preview_rows=current_app.config.get("IMPORT_PREVIEW_ROWS", 5),
        )
        return jsonify(result), 200
    except BatchFormatError as e:
        return jsonify({"error": str(e)}), 400


@imports_bp.post("")
def import_route():
    file_name, data = _uploaded_file()
    if file_name is None:
        return jsonify({"error": "file is required"}), 400

    form = request.form
    mapping = None
    if form.get("mapping"):
        try:
            mapping = json.loads(form["mapping"])
        except ValueError:
            return jsonify({"error": "mapping must be a JSON object"}), 400
        if not isinstance(mapping, dict):
            return jsonify({"error": "mapping must be a JSON object"}), 400

    try:
        outcome = import_service.run_import(
            file_name=file_name,
            data=data,
            source=form.get("source", "OTHER"),
            year=form.get("year"),
            quarter=form.get("quarter"),
            mapping=mapping,
            preview_rows=current_app.config.get("IMPORT_PREVIEW_ROWS", 5),
        )
        return jsonify(outcome.to_dict()), 201
    except (BatchFormatError, MappingError, WorkflowError, IngestError) as e:
        return jsonify({"error": str(e)}), 400
    except SyncError as e:
        return jsonify({"error": str(e)}), 500


@imports_bp.get("/batches")
def batches_route():
    limit = request.args.get("limit", 50, type=int)
    batches = import_service.list_batches(limit=limit)
    return jsonify({"batches": [b.to_dict() for b in batches]})
