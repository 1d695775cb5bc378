"""Follow package __init__.py"""
from .state import FollowState, PlaybackState, Joined, Left, Moved
from .tracker import VoicePresenceTracker, classify
from .machine import FollowStateMachine
from .service import FollowService

__all__ = [
    "FollowState", "PlaybackState", "Joined", "Left", "Moved",
    "VoicePresenceTracker", "classify",
    "FollowStateMachine", "FollowService",
]
