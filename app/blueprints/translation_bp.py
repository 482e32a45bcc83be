"""
Translation Blueprint — ad-hoc language detection and text translation.

Routes:
  GET  /api/v1/translation/languages
  POST /api/v1/translation/detect       {text}
  POST /api/v1/translation/translate    {text | texts, target_language, source_language?}
"""

from flask import Blueprint, jsonify, request

import app.services.translation_service as svc
from app.middleware.role_required import require_roles
from app.models.auth import ALL_ROLES

translation_bp = Blueprint("translation", __name__, url_prefix="/api/v1/translation")

MAX_BATCH = 50


@translation_bp.route("/languages", methods=["GET"])
@require_roles(*ALL_ROLES)
def languages():
    return jsonify({"languages": svc.supported_languages()})


@translation_bp.route("/detect", methods=["POST"])
@require_roles(*ALL_ROLES)
def detect():
    data = request.get_json(silent=True) or {}
    text = (data.get("text") or "").strip()
    if not text:
        return jsonify({"error": "text is required"}), 400
    return jsonify(svc.detect_language(text))


@translation_bp.route("/translate", methods=["POST"])
@require_roles(*ALL_ROLES)
def translate():
    data = request.get_json(silent=True) or {}
    target = (data.get("target_language") or "").strip()
    if not target:
        return jsonify({"error": "target_language is required"}), 400

    texts = data.get("texts")
    if texts is not None:
        if not isinstance(texts, list) or not all(isinstance(t, str) for t in texts):
            return jsonify({"error": "texts must be a list of strings"}), 400
        if len(texts) > MAX_BATCH:
            return jsonify({"error": f"At most {MAX_BATCH} texts per request"}), 400
        return jsonify({"results": svc.batch_translate(texts, target)})

    text = (data.get("text") or "").strip()
    if not text:
        return jsonify({"error": "text is required"}), 400
    return jsonify(svc.translate_text(text, target, data.get("source_language")))
