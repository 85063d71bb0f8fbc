"""
MatchCam - Game Session Recorder

Detects a running game, records it, cuts highlight clips from the
match timeline and uploads everything for remote analysis.
"""

__version__ = "1.0.0"
__author__ = "MatchCam Team"

from matchcam.config import Config
from matchcam.app import MatchCamApp

__all__ = ["Config", "MatchCamApp", "__version__"]
