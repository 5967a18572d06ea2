"""Entry point for gunicorn (`app:app`) and local runs."""

import logging
import os
import sys

from file_compressor import create_app
from file_compressor.config import load_runtime_config

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)

app = create_app()


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 3000))
    logger.info(f"Starting server on port {port}")
    logger.info(f"Artifact TTL: {load_runtime_config().artifact_ttl_seconds}s")
    app.run(host='0.0.0.0', port=port, debug=False)
