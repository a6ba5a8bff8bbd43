"""
Custom Event Tracking Module
"""
from .payloads import EventPayload, parse_event_payload
from .tracker import EventTracker

__all__ = [
    "EventPayload",
    "EventTracker",
    "parse_event_payload",
]
