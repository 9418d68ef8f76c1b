"""Signaling client: negotiation controller, sessions and transport."""
from .controller import ClientNegotiationController, ClientRole
from .media import MediaAcquisitionError, MediaSource, PlayerMediaSource
from .reconnect import ReconnectExhaustedError, ReconnectManager
from .session import NegotiationError, NegotiationSession, SessionState
from .share import generate_room_code, qr_image_url, room_from_share_url, share_url
from .transport import SignalingTransport, TransportClosedError

__all__ = [
    "ClientNegotiationController",
    "ClientRole",
    "MediaAcquisitionError",
    "MediaSource",
    "NegotiationError",
    "NegotiationSession",
    "PlayerMediaSource",
    "ReconnectExhaustedError",
    "ReconnectManager",
    "SessionState",
    "SignalingTransport",
    "TransportClosedError",
    "generate_room_code",
    "qr_image_url",
    "room_from_share_url",
    "share_url",
]
