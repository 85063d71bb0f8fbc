"""
Remote match statistics.

Fetches the most recent match of the linked account, reconciles it with
a locally recorded session by timestamp, and fetches the match timeline
that drives clip extraction.
"""

import logging
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import requests

logger = logging.getLogger(__name__)

# Prefix of locally generated session ids; such ids never resolve remotely
LOCAL_MATCH_PREFIX = "MATCH_"

CLIP_TYPE_RANK = {"death": 0, "kill": 1, "objective": 2, "other": 3}
SEVERITY_RANK = {"critical": 0, "high": 1, "medium": 2, "low": 3}

# Statistics forwarded to the analysis record
MATCH_DATA_FIELDS = (
    "champion", "kills", "deaths", "assists", "win", "duration", "gameMode",
    "queueId", "role", "lane", "teamPosition", "totalMinionsKilled",
    "neutralMinionsKilled", "goldEarned", "goldSpent", "visionScore",
    "wardsPlaced", "wardsKilled", "detectorWardsPlaced",
    "totalDamageDealtToChampions", "totalDamageTaken", "damageDealtToObjectives",
    "doubleKills", "tripleKills", "quadraKills", "pentaKills", "firstBloodKill",
    "firstTowerKill", "items", "champLevel", "summoner1Id", "summoner2Id",
    "rank", "teammates", "enemies",
)


@dataclass(frozen=True)
class MatchRecord:
    """Immutable snapshot of one remote match."""
    match_id: str
    timestamp: int  # match end, epoch ms
    duration: Optional[int] = None  # seconds
    champion: Optional[str] = None
    kills: int = 0
    deaths: int = 0
    assists: int = 0
    win: Optional[bool] = None
    game_mode: Optional[str] = None
    queue_id: Optional[int] = None
    stats: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    teammates: Tuple[Dict[str, Any], ...] = ()
    enemies: Tuple[Dict[str, Any], ...] = ()

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "MatchRecord":
        """Build a record from a match summary returned by the stats API."""
        stats = dict(data)
        stats["duration"] = data.get("gameDuration", data.get("duration"))
        stats["role"] = (
            data.get("role") or data.get("teamPosition") or data.get("individualPosition")
        )

        return cls(
            match_id=str(data["matchId"]),
            timestamp=int(data.get("timestamp") or 0),
            duration=stats["duration"],
            champion=data.get("champion"),
            kills=data.get("kills") or 0,
            deaths=data.get("deaths") or 0,
            assists=data.get("assists") or 0,
            win=data.get("win"),
            game_mode=data.get("gameMode"),
            queue_id=data.get("queueId"),
            stats=MappingProxyType(stats),
            teammates=tuple(data.get("teammates") or ()),
            enemies=tuple(data.get("enemies") or ()),
        )

    @property
    def is_remote(self) -> bool:
        return bool(self.match_id) and not self.match_id.startswith(LOCAL_MATCH_PREFIX)

    def to_payload(self) -> Dict[str, Any]:
        """Statistics payload for the analysis record."""
        payload = {key: self.stats.get(key) for key in MATCH_DATA_FIELDS}
        payload["teammates"] = list(self.teammates)
        payload["enemies"] = list(self.enemies)
        return payload


def _optional_float(value: Any) -> Optional[float]:
    return None if value is None else float(value)


@dataclass(frozen=True)
class ClipSpec:
    """A timestamped event worth clipping, as supplied by the timeline."""
    type: str
    severity: str
    start_time: float  # seconds into the recording
    duration: Optional[float] = None
    description: str = ""
    end_time: Optional[float] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "ClipSpec":
        return cls(
            type=str(data.get("type") or "other"),
            severity=str(data.get("severity") or "low"),
            start_time=float(data.get("startTime") or 0.0),
            duration=_optional_float(data.get("duration")),
            description=str(data.get("description") or ""),
            end_time=_optional_float(data.get("endTime")),
        )

    @property
    def priority(self) -> Tuple[int, int]:
        """Sort key: type rank first, then severity rank; lower sorts first."""
        return (
            CLIP_TYPE_RANK.get(self.type, 3),
            SEVERITY_RANK.get(self.severity, 3),
        )


@dataclass
class TimelineData:
    """Timeline of one match: clip candidates and raw events."""
    clips: List[ClipSpec] = field(default_factory=list)
    events: List[Dict[str, Any]] = field(default_factory=list)


class MatchDataFetcher:
    """
    Client for the read-only match statistics API.

    A session's match is the account's most recent match, accepted only
    if it ended after the session started minus a tolerance window.
    """

    def __init__(
        self,
        config,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the fetcher.

        Args:
            config: Configuration with api and pipeline settings
            session: Optional requests session (shared connection pool)
            sleep: Blocking sleep used for the settle wait
        """
        self.config = config
        self.base_url = config.api.stats_url.rstrip("/")
        self.timeout = config.api.request_timeout_sec
        self.tolerance_ms = config.pipeline.match_tolerance_ms
        self.settle_sec = config.pipeline.match_settle_sec
        self._session = session or requests.Session()
        self._sleep = sleep

    def _get_json(self, path: str, params: Dict[str, Any]) -> Any:
        response = self._session.get(
            f"{self.base_url}{path}",
            params=params,
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()

    def fetch(
        self,
        puuid: Optional[str],
        region: str,
        session_start_ms: int,
    ) -> Optional[MatchRecord]:
        """
        Fetch the match that corresponds to a session.

        Args:
            puuid: Linked account id, or None when unlinked
            region: Account region
            session_start_ms: When the game process was detected, epoch ms

        Returns:
            The match, or None if unlinked, too old, or the request failed
        """
        if not puuid:
            return None

        try:
            matches = self._get_json(
                "/matches",
                {"puuid": puuid, "region": region, "count": 1},
            )
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Match fetch failed: {e}")
            return None

        if not matches:
            logger.info("No recent match returned")
            return None

        try:
            match = MatchRecord.from_api(matches[0])
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Malformed match summary: {e}")
            return None

        if match.timestamp > session_start_ms - self.tolerance_ms:
            logger.info(f"Match found: {match.match_id} {match.champion or ''}".rstrip())
            return match

        logger.info("Most recent match predates this session, ignoring it")
        return None

    def fetch_after_settle(
        self,
        puuid: Optional[str],
        region: str,
        session_start_ms: int,
    ) -> Optional[MatchRecord]:
        """Wait for the stats service to ingest the game, then fetch()."""
        if not puuid:
            return None

        logger.debug(f"Waiting {self.settle_sec}s for match data to settle")
        self._sleep(self.settle_sec)
        return self.fetch(puuid, region, session_start_ms)

    def fetch_timeline(
        self,
        match_id: str,
        puuid: str,
        region: str,
    ) -> Optional[TimelineData]:
        """
        Fetch clip candidates and events for a match.

        Returns:
            TimelineData, or None if the timeline is unavailable
        """
        try:
            data = self._get_json(
                "/timeline",
                {"matchId": match_id, "puuid": puuid, "region": region},
            )
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Timeline unavailable, continuing with stats only: {e}")
            return None

        data = data or {}
        if not isinstance(data, dict):
            logger.warning("Timeline response malformed, continuing with stats only")
            return None

        items = data.get("clips") or []
        events = data.get("events") or []
        if not isinstance(items, list) or not isinstance(events, list):
            logger.warning("Timeline response malformed, continuing with stats only")
            return None

        clips = []
        for index, item in enumerate(items):
            try:
                clips.append(ClipSpec.from_api(item))
            except (AttributeError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed timeline clip {index}: {e}")

        timeline = TimelineData(
            clips=clips,
            events=events,
        )
        logger.info(f"Timeline fetched: {len(timeline.clips)} important moments")
        return timeline
