import logging

from flask import Flask, jsonify

import config

logger = logging.getLogger(__name__)


def create_app(lifecycle, status_source=None):
    """Liveness endpoint. ``status_source`` is a zero-arg callable returning a dict."""
    app = Flask(__name__)

    @app.route("/")
    def index():
        return "OK"

    @app.route("/healthz")
    def healthz():
        return jsonify(status="stopping" if lifecycle.shutting_down else "ok")

    @app.route("/status")
    def status():
        if status_source is None:
            return jsonify({})
        return jsonify(status_source())

    return app


def serve(app, port=None):
    port = port or config.HTTP_PORT
    logger.info("🌐 Liveness endpoint on http://0.0.0.0:%s", port)
    app.run(host="0.0.0.0", port=port, use_reloader=False, threaded=True)
