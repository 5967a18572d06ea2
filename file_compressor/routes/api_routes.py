"""API routes."""

from flask import Blueprint

from file_compressor.services import compression_service

api_bp = Blueprint("api", __name__)

api_bp.add_url_rule(
    "/upload",
    endpoint="upload",
    view_func=compression_service.upload,
    methods=["POST"],
)
api_bp.add_url_rule(
    "/download/<artifact_id>",
    endpoint="download",
    view_func=compression_service.download,
    methods=["GET"],
)
api_bp.add_url_rule(
    "/stream-zip",
    endpoint="stream_zip",
    view_func=compression_service.stream_zip,
    methods=["POST"],
)
