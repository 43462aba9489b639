"""
routes/insights.py
Reporting entrypoint. The ledger is the report; this just points at it.
"""

from flask import Blueprint, current_app, jsonify, redirect

insights_bp = Blueprint("insights", __name__)


@insights_bp.route("/report", methods=["GET"])
def report():
    settings = current_app.extensions["evaluator"].settings

    if not settings.ledger_enabled or not settings.ledger_report_url:
        return jsonify({
            "error": "Ledger not configured",
            "message": (
                "Evaluations are persisted to the ledger database. Configure "
                "LEDGER_DATABASE_URL and LEDGER_REPORT_URL to access reports."
            ),
        }), 200

    return redirect(settings.ledger_report_url, code=302)
