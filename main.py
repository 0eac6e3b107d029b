"""
Deployment entrypoint.
Builds the FastAPI app from server.py so uvicorn can find it as main:app
"""

from epubenc_backend.config import GatewayConfig
from epubenc_backend.logging_config import setup_logging
from server import create_app

_config = GatewayConfig.from_env()
setup_logging(_config.log_level)
app = create_app(_config)

__all__ = ["app"]
