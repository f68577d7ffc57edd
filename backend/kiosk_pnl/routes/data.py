# Overview: Flask API routes for the persistence contract; fetchAll and syncBatch over JSON.

from flask import Blueprint, current_app, jsonify, request

from ..services import sync_service
from ..services.sync_service import SyncError


data_bp = Blueprint("data", __name__, url_prefix="/api")


@data_bp.get("/data")
def fetch_all_route():
    limit = request.args.get("limit", type=int)
    try:
        state = sync_service.fetch_all(limit=limit)
    except Exception as e:
        current_app.logger.exception("Failed to load data")
        return jsonify({"error": str(e)}), 500
    return jsonify({
        "locations": [loc.to_dict() for loc in state["locations"]],
        "terminals": [t.to_dict() for t in state["terminals"]],
        "transactions": [t.to_dict() for t in state["transactions"]],
    })


@data_bp.post("/sync")
def sync_route():
    data = request.get_json(silent=True)
    if data is None:
        return jsonify({"error": "JSON body is required"}), 400

    try:
        locations, terminals, transactions = sync_service.drafts_from_payload(data)
    except SyncError as e:
        return jsonify({"error": str(e)}), 400

    try:
        result = sync_service.sync_batch(locations, terminals, transactions)
    except SyncError as e:
        current_app.logger.exception("Failed to sync data")
        return jsonify({"error": str(e)}), 500
    return jsonify({"success": True, "message": "Data synced", **result.to_dict()})
