"""
Session registry for active media streams.

This module provides the SessionManager class which tracks the bridge sessions
of all calls currently streaming, so that the HTTP layer can report how many
calls are active and how quickly their audio is being converted. Each session
owns its own buffer and transcoder; the registry only holds references.
"""

import statistics
from typing import Any, Dict, List

from media_bridge.bot.bridge_session import BridgeSession


class SessionManager:
    """
    Manages the set of live bridge sessions.

    Sessions are registered when their WebSocket is accepted and removed once
    their cleanup has run. The registry is only touched from the event loop.
    """

    def __init__(self):
        """Initialize an empty dictionary of active sessions."""
        self.active_sessions: Dict[str, BridgeSession] = {}

    def add_session(self, session: BridgeSession):
        """
        Add a session to the registry.

        Args:
            session: The bridge session for a newly accepted WebSocket
        """
        self.active_sessions[session.session_id] = session

    def remove_session(self, session_id: str):
        """
        Remove a session from the registry.

        Args:
            session_id: Identifier of the session to remove
        """
        if session_id in self.active_sessions:
            del self.active_sessions[session_id]

    def get_all_sessions(self) -> Dict[str, BridgeSession]:
        """Get all active sessions."""
        return self.active_sessions

    def latency_metrics(self) -> Dict[str, Any]:
        """
        Summarize conversion latency across active sessions.

        Returns:
            A dict with a ``latency_ms`` entry, or an empty dict when no
            session has converted audio yet
        """
        latencies: List[float] = [
            session.last_convert_latency_ms
            for session in self.active_sessions.values()
            if session.last_convert_latency_ms is not None
        ]
        if not latencies:
            return {}

        metrics = {
            "latency_ms": {
                "avg": statistics.mean(latencies),
                "min": min(latencies),
                "max": max(latencies),
                "median": statistics.median(latencies),
            }
        }
        if len(latencies) > 1:
            metrics["latency_ms"]["std_dev"] = statistics.stdev(latencies)
        return metrics
