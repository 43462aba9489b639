"""
Help Scout Response Evaluator
POST /        Dynamic Content webhook -> scorecard / processing placeholder
GET  /health  service status + cache occupancy
GET  /report  redirect to the ledger report
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import time

from flask import Flask, jsonify
from dotenv import load_dotenv

from ai.llm_client import EvaluationEngine
from config.settings import Settings
from integrations.helpscout_client import HelpScoutClient
from routes.insights import insights_bp
from routes.webhooks import webhooks_bp
from services.evaluation_cache import EvaluationCache
from services.evaluation_service import EvaluationService
from services.ledger_service import LedgerCache
from services.runtime import BackgroundRuntime
from utils.logging_setup import setup_logging

logger = logging.getLogger(__name__)

MAX_PAYLOAD_BYTES = 1048576


@dataclass
class Evaluator:
    """Process-wide evaluation services. Built once per app."""
    settings: Settings
    runtime: BackgroundRuntime
    cache: EvaluationCache
    ledger: LedgerCache
    engine: EvaluationEngine
    helpscout: HelpScoutClient
    service: EvaluationService
    started_at: float = field(default_factory=time.monotonic)


def build_evaluator(settings, engine=None, helpscout=None, ledger=None, runtime=None):
    cache = EvaluationCache(
        max_size=settings.cache_max_entries,
        ttl_seconds=settings.cache_ttl_seconds,
    )
    ledger = ledger if ledger is not None else LedgerCache.from_url(settings.ledger_database_url)
    engine = engine or EvaluationEngine(settings)
    helpscout = helpscout or HelpScoutClient.from_settings(settings)

    return Evaluator(
        settings=settings,
        runtime=runtime or BackgroundRuntime(),
        cache=cache,
        ledger=ledger,
        engine=engine,
        helpscout=helpscout,
        service=EvaluationService(cache=cache, ledger=ledger, engine=engine, helpscout=helpscout),
    )


def create_app(settings=None, evaluator=None):
    settings = settings or (evaluator.settings if evaluator else Settings.from_env())
    setup_logging(settings.log_level)

    if settings.disable_signature_validation:
        logger.warning("DISABLE_SIGNATURE_VALIDATION is set - webhook signatures are NOT checked")
    elif not settings.webhook_secret:
        logger.error("HELPSCOUT_DYNAMIC_WIDGET_SECRET_KEY not configured - every webhook will be rejected")

    evaluator = evaluator or build_evaluator(settings)
    evaluator.runtime.start()

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = MAX_PAYLOAD_BYTES
    app.extensions["evaluator"] = evaluator

    app.register_blueprint(webhooks_bp)
    app.register_blueprint(insights_bp)

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": round(time.monotonic() - evaluator.started_at, 3),
            "environment": settings.environment,
            "services": {
                "ledger": evaluator.ledger.enabled,
                "openai": evaluator.engine.configured,
                "helpScout": evaluator.helpscout.configured,
            },
            "cache": {
                "size": evaluator.cache.size,
                "maxSize": evaluator.cache.max_size,
                "inFlight": evaluator.cache.in_flight_count,
            },
        }), 200

    logger.info(
        "Help Scout Response Evaluator ready env=%s model=%s ledger=%s",
        settings.environment,
        settings.openai_model,
        evaluator.ledger.enabled,
    )
    return app


def main():
    load_dotenv()
    app = create_app()
    port = app.extensions["evaluator"].settings.port
    app.run(host="0.0.0.0", port=port, threaded=True)


if __name__ == "__main__":
    main()
