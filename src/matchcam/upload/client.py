"""
HTTP client for the remote analysis API.

Every endpoint answers with the envelope {"success": bool, "data": ..., "error": ...}.
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from matchcam.errors import NetworkError

logger = logging.getLogger(__name__)


class AnalysisApiClient:
    """Wraps the recordings and analysis endpoints."""

    def __init__(self, config, session: Optional[requests.Session] = None):
        """
        Initialize the client.

        Args:
            config: Configuration with api settings
            session: Optional requests session for connection reuse
        """
        self.base_url = config.api.analysis_url.rstrip("/")
        self.timeout = config.api.request_timeout_sec
        self.upload_timeout = config.api.upload_timeout_sec
        self._session = session or requests.Session()

    def close(self) -> None:
        self._session.close()

    def _request(self, method: str, path: str, timeout: Optional[int] = None, **kwargs) -> Any:
        """
        Send a request and unwrap the envelope.

        Returns:
            The envelope's data field (may be None)

        Raises:
            NetworkError: on transport failure, non-JSON body or success=false
        """
        url = f"{self.base_url}{path}"

        try:
            response = self._session.request(
                method, url, timeout=timeout or self.timeout, **kwargs
            )
        except requests.RequestException as e:
            raise NetworkError(f"{method} {path} failed: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise NetworkError(
                f"{method} {path}: HTTP {response.status_code}, invalid JSON",
                status_code=response.status_code,
            ) from e

        if not isinstance(body, dict) or not body.get("success"):
            error = body.get("error") if isinstance(body, dict) else None
            raise NetworkError(
                f"{method} {path}: {error or f'HTTP {response.status_code}'}",
                status_code=response.status_code,
            )

        return body.get("data")

    def _request_object(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        """Like _request, for endpoints whose data is a JSON object (or absent)."""
        data = self._request(method, path, **kwargs)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise NetworkError(f"{method} {path}: unexpected response data {type(data).__name__}")
        return data

    # =========================================================================
    # Recordings
    # =========================================================================

    def create_recording(
        self,
        match_id: str,
        puuid: str,
        region: str,
        file_size: int,
        clip_count: int,
    ) -> str:
        """Create a recording container and return its id."""
        data = self._request_object("POST", "/recordings/upload-url", json={
            "matchId": match_id,
            "puuid": puuid,
            "region": region,
            "fileSize": file_size,
            "clipCount": clip_count,
        })
        recording_id = data.get("recordingId")
        if not recording_id:
            raise NetworkError("Recording created without an id")
        return recording_id

    def upload_video(self, recording_id: str, video: bytes, content_type: str = "video/webm") -> None:
        self._request(
            "PUT",
            f"/recordings/{recording_id}/upload",
            timeout=self.upload_timeout,
            data=video,
            headers={"Content-Type": content_type},
        )

    def upload_clip(self, recording_id: str, clip_payload: Dict[str, Any]) -> Optional[str]:
        """Upload one clip's metadata and frames; returns the remote clip id."""
        data = self._request_object(
            "POST",
            f"/recordings/{recording_id}/clips",
            timeout=self.upload_timeout,
            json=clip_payload,
        )
        return data.get("clipId")

    def recording_exists(self, match_id: str) -> bool:
        data = self._request_object("GET", f"/recordings/check/{match_id}")
        return bool(data.get("exists"))

    # =========================================================================
    # Analysis
    # =========================================================================

    def find_analysis(self, match_id: str) -> Optional[str]:
        """Return the id of the analysis for a match, if one exists."""
        try:
            data = self._request_object("GET", f"/analysis/match/{match_id}")
        except NetworkError as e:
            if e.status_code == 404:
                return None
            raise
        return data.get("id")

    def create_analysis(
        self,
        match_id: str,
        puuid: str,
        region: str,
        match_data: Dict[str, Any],
        clip_count: Optional[int] = None,
        timeline_events: Optional[List[Dict[str, Any]]] = None,
    ) -> str:
        body: Dict[str, Any] = {
            "matchId": match_id,
            "puuid": puuid,
            "region": region,
            "matchData": match_data,
        }
        if clip_count is not None:
            body["hasVideoClips"] = clip_count > 0
            body["clipCount"] = clip_count
            body["timelineEvents"] = timeline_events or []

        data = self._request_object("POST", "/analysis", json=body)
        analysis_id = data.get("id")
        if not analysis_id:
            raise NetworkError("Analysis created without an id")
        return analysis_id

    def start_analysis(self, analysis_id: str) -> None:
        self._request("POST", f"/analysis/{analysis_id}/start")

    def reanalyze(self, analysis_id: str) -> None:
        self._request("POST", f"/analysis/{analysis_id}/reanalyze")
