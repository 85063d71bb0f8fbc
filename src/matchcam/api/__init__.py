"""REST API module for MatchCam."""

from matchcam.api.routes import create_api_blueprint
from matchcam.api.server import APIServer

__all__ = ["create_api_blueprint", "APIServer"]
