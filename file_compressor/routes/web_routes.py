"""Health routes."""

from flask import Blueprint

from file_compressor.services import compression_service

web_bp = Blueprint("web", __name__)


@web_bp.get("/health")
def health():
    return compression_service.health()
