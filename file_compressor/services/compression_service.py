"""Flask view functions and error handlers for upload, download and bulk download."""

import io
import json
import logging
import zipfile
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from flask import Flask, Response, current_app, jsonify, request, send_file
from werkzeug.exceptions import HTTPException, NotFound, RequestEntityTooLarge
from werkzeug.utils import secure_filename

from file_compressor.bootstrap import Runtime
from file_compressor.core.artifacts import ArtifactKind
from file_compressor.core.exceptions import (
    ArchiveError,
    FileCompressionError,
    InvalidTargetSizeError,
)
from file_compressor.engine.ghostscript import get_ghostscript_command
from file_compressor.services.lifecycle import CompressionRequest, MimeClass

logger = logging.getLogger(__name__)

RUNTIME_EXTENSION = "file_compressor"
ARCHIVE_NAME = "compressed-files.zip"


def configure_app(app: Flask, runtime: Runtime) -> None:
    app.config["MAX_CONTENT_LENGTH"] = runtime.config.max_content_length
    app.extensions[RUNTIME_EXTENSION] = runtime


def get_runtime() -> Runtime:
    return current_app.extensions[RUNTIME_EXTENSION]


def create_error_response(error: Exception, status_code: int = 500):
    """Create a standardized JSON error body."""
    if isinstance(error, FileCompressionError):
        return jsonify({
            "success": False,
            "error": error.message,
            "error_type": error.error_type,
            "error_message": error.message,
        }), status_code

    if isinstance(error, HTTPException):
        message = error.description or error.name
    else:
        message = "Processing failed"

    return jsonify({
        "success": False,
        "error": message,
        "error_type": "UnknownError",
        "error_message": message,
    }), status_code


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(FileCompressionError)
    def handle_compression_error(e: FileCompressionError):
        if e.status_code >= 500:
            logger.error(f"{request.method} {request.path} failed ({e.error_type}): {e.message}")
        else:
            logger.info(f"{request.method} {request.path} rejected ({e.error_type}): {e.message}")
        return create_error_response(e, e.status_code)

    @app.errorhandler(RequestEntityTooLarge)
    def handle_large_file(e):
        limit_mb = app.config.get("MAX_CONTENT_LENGTH", 0) / (1024 * 1024)
        return jsonify({"success": False, "error": f"File too large (max {limit_mb:.0f}MB)"}), 413

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        if isinstance(e, NotFound):
            logger.info("404 %s %s", request.method, request.path)
        else:
            logger.warning("HTTP %s on %s %s: %s", e.code, request.method, request.path, e.description)
        return create_error_response(e, e.code or 400)

    @app.errorhandler(Exception)
    def handle_error(e):
        logger.exception("Unhandled error")
        return create_error_response(e, 500)


def _parse_target_size_kb(raw: Optional[str]) -> Optional[float]:
    if raw is None or not str(raw).strip():
        return None
    try:
        return float(raw)
    except ValueError:
        raise InvalidTargetSizeError.for_value(raw) from None


def upload():
    """Accept one multipart file and compress it synchronously.

    Form fields:
    - file: the image or PDF
    - targetSizeKB: optional positive size limit in kilobytes
    """
    if "file" not in request.files:
        return jsonify({"success": False, "error": "No file uploaded"}), 400
    f = request.files["file"]
    if not f.filename:
        return jsonify({"success": False, "error": "No file selected"}), 400

    target_size_kb = _parse_target_size_kb(request.form.get("targetSizeKB"))
    data = f.read()
    compression_request = CompressionRequest(
        source_bytes=data,
        mime_class=MimeClass.from_mimetype(f.mimetype),
        target_size_kb=target_size_kb,
        filename=f.filename,
        mimetype=f.mimetype,
    )
    logger.info(
        f"Upload {f.filename} ({len(data) / 1024:.1f}KB, {f.mimetype}, "
        f"target={target_size_kb if target_size_kb is not None else 'none'})"
    )

    result = get_runtime().manager.compress(compression_request)
    return jsonify({
        "success": True,
        "id": result.output_artifact_id,
        "original_name": result.original_name,
        "original_size": result.original_size_bytes,
        "compressed_size": result.compressed_size_bytes,
        "met_target": result.met_target,
        "method": result.method,
        "degraded": result.degraded,
        "status": "done",
    })


def download(artifact_id: str):
    """Send a compressed file once, then delete it."""
    data = get_runtime().manager.deliver(artifact_id)
    download_name = secure_filename(request.args.get("name") or "") or artifact_id
    logger.info(f"[download] Serving {artifact_id} as {download_name} ({len(data)} bytes)")
    return send_file(io.BytesIO(data), as_attachment=True, download_name=download_name)


def _requested_file_ids() -> List[str]:
    raw: Any = request.form.get("fileIds")
    if raw is None:
        body = request.get_json(silent=True) or {}
        raw = body.get("fileIds") if isinstance(body, dict) else None
    if isinstance(raw, str):
        try:
            raw = json.loads(raw or "[]")
        except ValueError:
            raw = []
    if not isinstance(raw, list):
        return []
    return [item for item in raw if isinstance(item, str)]


def stream_zip():
    """Bundle still-present outputs into one zip, then delete them."""
    file_ids = _requested_file_ids()
    if not file_ids:
        return jsonify({"success": False, "error": "No files specified"}), 400

    runtime = get_runtime()
    artifacts = runtime.manager.collect(file_ids)

    # Assemble fully before sending so a failure can still become an error response.
    buffer = io.BytesIO()
    try:
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9) as archive:
            for artifact in artifacts:
                try:
                    archive.write(artifact.path, arcname=artifact.id)
                except FileNotFoundError:
                    logger.info(f"[zip] {artifact.id} disappeared before archiving; skipping")
    except (OSError, zipfile.BadZipFile) as e:
        raise ArchiveError(f"Could not build the archive: {e}", original_error=e) from e

    included = [a.id for a in artifacts]
    archive_bytes = buffer.getvalue()
    logger.info(f"[zip] Sending {len(included)} file(s), {len(archive_bytes)} bytes")

    # A plain body, not send_file: a server file_wrapper would bypass call_on_close.
    response = Response(
        archive_bytes,
        mimetype="application/zip",
        headers={"Content-Disposition": f"attachment; filename={ARCHIVE_NAME}"},
    )
    response.call_on_close(lambda: runtime.manager.release(included))
    return response


def build_health_snapshot() -> Dict[str, Any]:
    """Build a lightweight snapshot for the health endpoint."""
    runtime = get_runtime()
    gs_cmd = get_ghostscript_command()
    try:
        upload_count = runtime.store.count(ArtifactKind.UPLOAD)
        output_count = runtime.store.count(ArtifactKind.OUTPUT)
    except OSError:
        upload_count = output_count = -1

    return {
        "status": "healthy" if gs_cmd else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
        "ghostscript": {
            "available": gs_cmd is not None,
            "command": gs_cmd or "missing",
        },
        "storage": {
            "upload_folder": str(runtime.config.upload_dir),
            "output_folder": str(runtime.config.output_dir),
            "upload_count": upload_count,
            "output_count": output_count,
            "ttl_seconds": runtime.config.artifact_ttl_seconds,
        },
        "reaper": {
            "enabled": runtime.config.reaper_enabled,
            "running": runtime.reaper.running,
            "interval_seconds": runtime.config.reaper_interval_seconds,
        },
    }


def health():
    """Health check endpoint."""
    return jsonify(build_health_snapshot())
