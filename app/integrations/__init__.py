"""app.integrations — External service gateway modules.

All outbound HTTP calls to third-party APIs go through a gateway in this
package, never via bare `requests` calls in services or blueprints.

Every gateway call is:
  - Authenticated (credentials injected by the gateway)
  - A single attempt with a 30 s timeout (no retry)
  - Returned as a structured result the service layer interprets

Current gateways:
  insightly_gateway.InsightlyGateway — Insightly CRM REST API v3.1
  translation_gateway.TranslationGateway — Google / DeepL / LLM translation
"""
