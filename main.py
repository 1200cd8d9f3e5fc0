#!/usr/bin/env python3
"""
LIMSDB - Laboratory sample tracking import service
===================================================

Single-command run:  python main.py

See config.py for all environment-variable tunables.
"""

import logging

from flask import Flask, jsonify

import config
from db import init_db, session_scope, ENTITY_TYPES
from api import api_bp
from import_engine.verifier import count_real_rows
from services import ensure_unknown_entities


def create_app(db_url: str | None = None) -> Flask:
    """Flask application factory."""

    logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)

    app = Flask(__name__)
    app.secret_key = config.SECRET
    app.config["MAX_CONTENT_LENGTH"] = config.MAX_UPLOAD_MB * 1024 * 1024

    # ── Initialise database + Unknown placeholders ──────────────────
    init_db(db_url or config.DB_URL)
    with session_scope() as session:
        ensure_unknown_entities(session)
        session.commit()

    # ── Register blueprints ─────────────────────────────────────────
    app.register_blueprint(api_bp)

    @app.route("/health")
    def health():
        return jsonify({"status": "ok", "entityTypes": list(ENTITY_TYPES)})

    return app


def main():
    print("=" * 56)
    print("  LIMSDB - Sample Import Service")
    print("=" * 56)

    app = create_app()
    print(f"  Database: {config.DB_URL}")

    with session_scope() as session:
        counts = count_real_rows(session)
    print("  Records: " + ", ".join(f"{n} {t}" for t, n in counts.items()))

    print(f"\n  http://{config.HOST}:{config.PORT}")
    print(f"  Import: POST http://{config.HOST}:{config.PORT}/api/v1/import/execute")
    print("=" * 56)

    app.run(host=config.HOST, port=config.PORT, debug=config.DEBUG)


if __name__ == "__main__":
    main()
