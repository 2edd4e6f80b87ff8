from .codec import build_envelope, decode_envelope, encode_envelope, is_response
from .models import MessageType, RemoteEnvelope

__all__ = [
    "MessageType",
    "RemoteEnvelope",
    "build_envelope",
    "decode_envelope",
    "encode_envelope",
    "is_response",
]
