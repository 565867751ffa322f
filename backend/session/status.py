"""
Live session status.

Tracked by LiveSession and reported to the UI through its status callback.
Status is separate from playback state: a session can be ACTIVE with
nothing scheduled.
"""
from enum import Enum

class LiveStatus(Enum):
    """
    Lifecycle of one live conversation session.

    ERROR and DISCONNECTED are terminal for a session instance; a new
    conversation needs a new LiveSession.
    """
    IDLE = "IDLE"                  # Constructed, open() not called
    CONNECTING = "CONNECTING"      # Acquiring devices and the remote channel
    ACTIVE = "ACTIVE"              # Streaming both ways
    ERROR = "ERROR"                # Failed; resources released
    DISCONNECTED = "DISCONNECTED"  # Closed by the user or the remote side
