"""
UI client connection status.

Tracked by SessionGateway, separately from controller state: the voice
session outlives any single WebSocket client.
"""
from enum import Enum


class ConnectionStatus(Enum):
    """
    Whether a UI client is attached.

    Independent of SessionState; the controller keeps running while DOWN.
    """
    DOWN = "DOWN"  # No client attached
    UP = "UP"      # Exactly one client attached
