"""HTTP entrypoint that queues auto-registration of chat-mentioned places."""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

from flask import Flask, jsonify, request

from ragplaces.core import db
from ragplaces.core.config import get_settings
from ragplaces.core.registrar import register_places
from ragplaces.etl.transform import mention_from_payload
from ragplaces.models import PlaceMention

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

MAX_PLACES_PER_REQUEST = 20

app = Flask(__name__)
# one batch at a time; the pool and the quota count are shared
_executor = ThreadPoolExecutor(max_workers=1)


@app.get("/")
def root() -> Any:
    return "ok", 200


@app.get("/healthz")
def healthcheck() -> Any:
    """Reads settings only; does not touch the database."""
    settings = get_settings()
    return (
        jsonify(
            {
                "status": "ok",
                "worker_port_config": settings.worker_port,
                "daily_auto_limit": settings.daily_auto_limit,
                "revision": os.getenv("K_REVISION", "unknown"),
            }
        ),
        200,
    )


@app.post("/verify-and-register")
def enqueue_registration() -> Any:
    """
    Queue verification of place mentions.
    Body: {"places": [{"desc", "type", "region"?, "lat"?, "lon"?}], "regionHint"?}
    """
    payload: Dict[str, Any] = request.get_json(silent=True) or {}

    places = payload.get("places")
    if not isinstance(places, list) or not places:
        return jsonify({"error": "places must be a non-empty array"}), 400
    if len(places) > MAX_PLACES_PER_REQUEST:
        return jsonify({"error": f"at most {MAX_PLACES_PER_REQUEST} places per request"}), 400

    mentions: List[PlaceMention] = []
    for item in places:
        mention = mention_from_payload(item)
        if mention is None:
            return jsonify({"error": "each place needs a non-empty desc"}), 400
        mentions.append(mention)

    region_hint_raw = payload.get("regionHint")
    if region_hint_raw is not None and not isinstance(region_hint_raw, str):
        return jsonify({"error": "regionHint must be a string"}), 400
    region_hint = (region_hint_raw or "").strip() or None

    logger.info("Queueing auto-registration of %d places (hint=%s)", len(mentions), region_hint)
    _executor.submit(_register_safe, mentions, region_hint)

    return jsonify({"data": {"status": "queued", "count": len(mentions)}}), 202


def _register_safe(mentions: List[PlaceMention], region_hint: Optional[str]) -> None:
    try:
        settings = get_settings()
        db.init_pool(settings)
        register_places(mentions, region_hint, settings)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Auto-registration batch failed: %s", exc)


def main() -> None:
    env_port = os.getenv("PORT")
    port = int(env_port or get_settings().worker_port)
    logger.info("[BOOT] Binding on 0.0.0.0:%d", port)
    app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
