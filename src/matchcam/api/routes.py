"""
REST API routes for MatchCam.

Base path: /api/v1

Every response uses the envelope {"success": bool, "data"?, "error"?}.
"""

import logging
import threading
from datetime import datetime

from flask import Blueprint, jsonify, request

from matchcam import __version__

logger = logging.getLogger(__name__)


def _ok(data=None, status: int = 200):
    body = {"success": True}
    if data is not None:
        body["data"] = data
    return jsonify(body), status


def _fail(error: str, status: int = 400):
    return jsonify({"success": False, "error": error}), status


def create_api_blueprint(app_context):
    """
    Create Flask blueprint with all API routes.

    Args:
        app_context: MatchCamApp instance with all services

    Returns:
        Flask Blueprint
    """
    api = Blueprint("api", __name__, url_prefix="/api/v1")

    # =========================================================================
    # Status Endpoints
    # =========================================================================

    @api.route("/health", methods=["GET"])
    def health_check():
        """Simple health check endpoint."""
        return _ok({
            "status": "ok",
            "timestamp": datetime.now().isoformat(),
        })

    @api.route("/status", methods=["GET"])
    def get_status():
        """
        Get application status.

        Returns:
        - Session state and current session
        - Capture backend status
        - Local storage status
        - Linked account
        - Recent notifications
        """
        config = app_context.config
        context = app_context.context
        backend = app_context.backend
        store = app_context.store
        notifier = app_context.notifier
        watcher = app_context.watcher

        return _ok({
            "version": __version__,
            "production_mode": config.production_mode,
            "timestamp": datetime.now().isoformat(),
            "watching": bool(watcher and watcher.running),
            "session": context.snapshot(),
            "capture": backend.get_status() if backend else {},
            "storage": store.get_status() if store else {},
            "account": {
                "linked": config.account.is_linked,
                "name": config.account.display_name,
                "region": config.account.region,
            },
            "notifications": notifier.recent() if notifier else [],
        })

    # =========================================================================
    # Recording Endpoints
    # =========================================================================

    @api.route("/record/accept", methods=["POST"])
    def accept_recording():
        """Consent to record the detected game."""
        session = app_context.session
        if not session:
            return _fail("Recorder not available", 503)

        if not session.accept():
            return _fail(f"No recording request pending (state: {session.state.value})", 409)
        return _ok(app_context.context.snapshot())

    @api.route("/record/decline", methods=["POST"])
    def decline_recording():
        """Decline recording the detected game."""
        session = app_context.session
        if not session:
            return _fail("Recorder not available", 503)

        if not session.decline():
            return _fail(f"No recording request pending (state: {session.state.value})", 409)
        return _ok(app_context.context.snapshot())

    @api.route("/record/stop", methods=["POST"])
    def stop_recording():
        """Stop the current recording and hand it to post-processing."""
        session = app_context.session
        if not session:
            return _fail("Recorder not available", 503)

        if not session.stop():
            return _fail("Not recording", 409)
        return _ok(app_context.context.snapshot())

    # =========================================================================
    # Recordings Management
    # =========================================================================

    @api.route("/recordings", methods=["GET"])
    def list_recordings():
        """List local recordings, newest first."""
        store = app_context.store
        if not store:
            return _fail("Storage not available", 503)

        return _ok({"recordings": store.list_recordings()})

    @api.route("/recordings", methods=["DELETE"])
    def clear_recordings():
        """Delete every local recording."""
        store = app_context.store
        if not store:
            return _fail("Storage not available", 503)

        if app_context.context.is_recording:
            return _fail("Cannot clear recordings while recording", 409)

        return _ok({"deleted": store.clear_all()})

    @api.route("/recordings/reanalyze", methods=["POST"])
    def reanalyze_latest():
        """
        Re-run analysis for the most recent recording.

        Runs in the background; the outcome is reported as a notification.
        """
        store = app_context.store
        pipeline = app_context.pipeline
        if not store or not pipeline:
            return _fail("Pipeline not available", 503)

        latest = store.latest()
        if latest is None:
            return _fail("No recordings found", 404)

        thread = threading.Thread(
            target=pipeline.reanalyze_latest,
            name="reanalyze-latest",
            daemon=True,
        )
        thread.start()
        return _ok({"recording": latest.match_id}, 202)

    # =========================================================================
    # Configuration Endpoints
    # =========================================================================

    @api.route("/config", methods=["GET"])
    def get_configuration():
        """Get current configuration."""
        return _ok(app_context.config.to_dict())

    @api.route("/config", methods=["POST"])
    def update_configuration():
        """
        Update configuration.

        Request body: Partial or full config object
        """
        config = app_context.config

        # Don't allow config changes while recording
        if app_context.context.is_recording:
            return _fail("Cannot change config while recording", 409)

        data = request.get_json(silent=True)
        if not data or not isinstance(data, dict):
            return _fail("Request body required", 400)

        try:
            config.update_from_dict(data)
            config.save(app_context.config_path)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Config update failed: {e}")
            return _fail(str(e), 400)

        return _ok(config.to_dict())

    return api
