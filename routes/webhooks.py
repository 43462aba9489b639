"""
routes/webhooks.py
Help Scout Dynamic Content webhook.

POST /  ->  {"html": ...}
  401  signature rejected (checked before anything else)
  400  payload fails schema validation
  408  handling exceeded REQUEST_TIMEOUT_SECONDS
  200  everything else, including internal failures, so Help Scout
       does not redeliver
"""

import logging
from time import perf_counter

from flask import Blueprint, current_app, jsonify, render_template, request

from audit import set_trace_id
from errors import PayloadValidationError, RequestTimeoutError
from services.evaluation_service import STATUS_PROCESSING, STATUS_RESULT
from utils.signature import SIGNATURE_HEADER, verify_signature
from utils.webhook_payload import parse_webhook_payload

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__)

CATEGORY_LABELS = (
    ("tone_empathy", "Tone & Empathy"),
    ("clarity_completeness", "Clarity"),
    ("standard_of_english", "English"),
    ("problem_resolution", "Problem Resolution"),
)


# ── Rendering ─────────────────────────────────────────────────


@webhooks_bp.app_template_filter("score")
def format_score(value):
    """8.0 -> "8", 7.5 -> "7.5"."""
    value = round(float(value), 1)
    return str(int(value)) if value.is_integer() else f"{value:.1f}"


def _html_response(html, status=200):
    return jsonify({"html": html}), status


def _error_html(title, message):
    return render_template("error.html", title=title, message=message)


def render_outcome(outcome):
    if outcome.status == STATUS_PROCESSING:
        return render_template("processing.html")

    if outcome.status == STATUS_RESULT:
        evaluation = outcome.result
        if evaluation.error:
            return _error_html("⚠️ Evaluation Error", evaluation.error)
        return render_template(
            "scorecard.html",
            evaluation=evaluation,
            category_labels=CATEGORY_LABELS,
        )

    return render_template(
        "notice.html",
        message=outcome.message,
        ticket_number=outcome.ticket_number,
    )


# ── Endpoint ──────────────────────────────────────────────────


@webhooks_bp.route("/", methods=["POST"])
def helpscout_webhook():
    evaluator = current_app.extensions["evaluator"]
    settings = evaluator.settings

    t0 = perf_counter()
    trace_id = set_trace_id(request.headers.get("X-Request-Id"))
    raw_body = request.get_data(cache=True)

    if not verify_signature(
        raw_body,
        request.headers.get(SIGNATURE_HEADER),
        settings.webhook_secret,
        disabled=settings.disable_signature_validation,
        remote_addr=request.remote_addr,
    ):
        logger.error("Unauthorized request - signature validation failed (ip=%s)", request.remote_addr)
        return _html_response(
            _error_html(
                "🚨 Unauthorized Request",
                "Signature validation failed. Please check your Help Scout app configuration.",
            ),
            401,
        )

    try:
        payload = parse_webhook_payload(raw_body)
    except PayloadValidationError as e:
        logger.warning("Webhook payload validation failed: %s errors=%s ip=%s", e, e.errors, request.remote_addr)
        return _html_response(
            _error_html(
                "⚠️ Invalid Request",
                "The request payload is invalid. Please contact support if this issue persists.",
            ),
            400,
        )

    logger.info("Help Scout request received ticket=%s trace=%s", payload.ticket.id, trace_id)

    try:
        outcome = evaluator.runtime.run(
            evaluator.service.handle_webhook(payload, trace_id),
            timeout=settings.request_timeout,
        )
    except RequestTimeoutError:
        logger.error("Request timeout ticket=%s after %ss", payload.ticket.id, settings.request_timeout)
        return _html_response(
            _error_html("⏱️ Request Timeout", "The request took too long to process. Please try again."),
            408,
        )
    except Exception as e:
        logger.error("Error processing evaluation ticket=%s: %s", payload.ticket.id, e, exc_info=True)
        return _html_response(
            _error_html(
                "📊 Response Evaluator",
                "An error occurred while processing your request. Please try again.",
            )
        )

    logger.info(
        "webhook:total ticket=%s status=%s source=%s ms=%d",
        payload.ticket.id,
        outcome.status,
        outcome.source or "-",
        int((perf_counter() - t0) * 1000),
    )
    return _html_response(render_outcome(outcome))
