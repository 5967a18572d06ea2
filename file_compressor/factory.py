"""Flask app factory."""

from __future__ import annotations

from typing import Optional

from flask import Flask

from file_compressor import bootstrap
from file_compressor.config import RuntimeConfig, load_runtime_config
from file_compressor.routes.api_routes import api_bp
from file_compressor.routes.web_routes import web_bp
from file_compressor.services import compression_service


def create_app(config: Optional[RuntimeConfig] = None) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)

    runtime_config = config or load_runtime_config()
    runtime = bootstrap.build_runtime(runtime_config)
    compression_service.configure_app(app, runtime)

    app.register_blueprint(web_bp)
    app.register_blueprint(api_bp)
    compression_service.register_error_handlers(app)

    bootstrap.bootstrap_runtime(runtime)
    return app
