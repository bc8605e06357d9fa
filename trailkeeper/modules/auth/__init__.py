"""Auth module"""

from .tokens import (
    ExternalIdentity,
    RejectionReason,
    SelfSignedIdentity,
    TokenCheck,
    TokenService,
)
from .gate import AuthorizationGate, get_current_identity
from .router import router

__all__ = [
    "ExternalIdentity",
    "RejectionReason",
    "SelfSignedIdentity",
    "TokenCheck",
    "TokenService",
    "AuthorizationGate",
    "get_current_identity",
    "router",
]
