"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in app/__init__.py with no default limits;
this module applies granular limits per route category.

Usage:
    from app.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

# blueprint name → limit (per remote IP)
BLUEPRINT_LIMITS = {
    # Outbound provider calls (translation API / LLM, Insightly)
    "translation": "20/minute",
    "crm": "20/minute",
    # Whole-file uploads
    "bulk_import": "10/minute",
    # Interactive CRUD
    "case_study": "120/minute",
    "approval": "60/minute",
    "cost_calculator": "120/minute",
    "gdpr": "30/minute",
    "admin": "60/minute",
    "system_config": "60/minute",
    # Read-focused
    "bhag": "200/minute",
    "notification": "200/minute",
}


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Health check is exempt. Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for bp_name, limit in BLUEPRINT_LIMITS.items():
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(limit)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured — providers: 20/min, import: 10/min, CRUD: 60-120/min"
    )
