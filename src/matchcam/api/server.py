"""
API Server for MatchCam.

Flask-based local control API.
"""

import logging
import threading
from typing import Optional

from flask import Flask
from flask_cors import CORS
from werkzeug.serving import make_server

from matchcam.api.routes import create_api_blueprint

logger = logging.getLogger(__name__)


class APIServer:
    """
    Local control API server.

    Provides:
    - Status and health
    - Consent and manual stop
    - Recordings listing, clearing and re-analysis
    - Configuration
    """

    def __init__(self, app_context, host: str = "127.0.0.1", port: int = 45679):
        """
        Initialize API server.

        Args:
            app_context: MatchCamApp instance
            host: Host to bind to
            port: Port to listen on
        """
        self.app_context = app_context
        self.host = host
        self.port = port
        self.flask_app = self._create_flask_app()

        self._server = None
        self._thread: Optional[threading.Thread] = None

    def _create_flask_app(self) -> Flask:
        """Create and configure Flask application."""
        app = Flask(__name__)

        # Local dashboard pages call the API cross-origin
        CORS(app)

        app.register_blueprint(create_api_blueprint(self.app_context))

        @app.errorhandler(404)
        def not_found(e):
            return {"success": False, "error": "Not found"}, 404

        @app.errorhandler(500)
        def server_error(e):
            """Handle 500 errors."""
            logger.error(f"Server error: {e}")
            return {"success": False, "error": "Internal server error"}, 500

        return app

    def start(self) -> None:
        """Serve requests on a background thread."""
        if self._thread and self._thread.is_alive():
            return

        self._server = make_server(self.host, self.port, self.flask_app, threaded=True)
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            name="api-server",
            daemon=True,
        )
        self._thread.start()
        logger.info(f"Control API listening on http://{self.host}:{self.port}/api/v1")

    def stop(self) -> None:
        if self._server:
            self._server.shutdown()
            self._server = None
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None

    def get_wsgi_app(self):
        """Get WSGI application for testing or external servers."""
        return self.flask_app
