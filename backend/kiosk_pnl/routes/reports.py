from flask import Blueprint, jsonify, request

from ..services import reporting_service


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/profitability")
def profitability_report():
    try:
        report = reporting_service.profitability_report(
            year=request.args.get("year"),
            quarter=request.args.get("quarter"),
        )
        return jsonify(report), 200
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400


@reports_bp.get("/summary")
def summary_report():
    try:
        report = reporting_service.summary_report(
            year=request.args.get("year"),
            quarter=request.args.get("quarter"),
        )
        return jsonify(report), 200
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400


@reports_bp.get("/cash-logistics")
def cash_logistics_report():
    report = reporting_service.cash_logistics(state=request.args.get("state"))
    return jsonify(report), 200


@reports_bp.get("/daily")
def daily_performance_report():
    try:
        report = reporting_service.daily_performance(
            year=request.args.get("year"),
            quarter=request.args.get("quarter"),
        )
        return jsonify(report), 200
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400


@reports_bp.get("/transactions")
def transactions_report():
    try:
        report = reporting_service.transaction_list(
            year=request.args.get("year"),
            quarter=request.args.get("quarter"),
            status=request.args.get("status"),
            source=request.args.get("source"),
            period=request.args.get("period"),
            limit=request.args.get("limit", type=int),
        )
        return jsonify(report), 200
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400
