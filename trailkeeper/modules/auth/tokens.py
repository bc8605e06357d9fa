"""
Identity tokens.

Two schemes:
- Self-signed: base64("subject:timestampMillis:hexHMAC"), HMAC-SHA256 over
  "subject:timestampMillis" with the server-held secret.
- Externally-issued: a three-segment JWT-shaped credential whose claims
  segment carries sub, email and optionally exp. Whether its signature is
  checked depends on the configured SignatureVerifier.

Expected failures are returned as TokenCheck rejections, never raised.
"""

import base64
import binascii
import hashlib
import hmac
import json
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Union

import jwt
from jwt import PyJWKClient
from jwt.exceptions import PyJWKClientError, PyJWTError

from trailkeeper.core.clock import Clock, MS_PER_SECOND, SystemClock
from trailkeeper.core.config import Config

logger = logging.getLogger(__name__)


class RejectionReason(str, Enum):
    """Why a credential was rejected"""
    MISSING_CREDENTIAL = "missing_credential"
    MALFORMED = "malformed"
    SIGNATURE_MISMATCH = "signature_mismatch"
    MISSING_CLAIMS = "missing_claims"
    EXPIRED = "expired"
    UNTRUSTED_SIGNATURE = "untrusted_signature"


@dataclass(frozen=True)
class SelfSignedIdentity:
    """Identity asserted by a self-signed token"""
    subject: str
    issued_at_ms: int


@dataclass(frozen=True)
class ExternalIdentity:
    """Identity extracted from an externally-issued claims token"""
    subject: str
    email: str
    expires_at: Optional[int] = None  # epoch seconds
    name: Optional[str] = None


Identity = Union[SelfSignedIdentity, ExternalIdentity]


@dataclass(frozen=True)
class TokenCheck:
    """Outcome of validating a token: an identity or a rejection."""
    identity: Optional[Identity] = None
    reason: Optional[RejectionReason] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.identity is not None

    @classmethod
    def accept(cls, identity: Identity) -> "TokenCheck":
        return cls(identity=identity)

    @classmethod
    def reject(cls, reason: RejectionReason, message: str) -> "TokenCheck":
        return cls(reason=reason, message=message)


# ---------------------------------------------------------------------------
# Signature verifiers for externally-issued tokens
# ---------------------------------------------------------------------------

class SignatureVerifier(Protocol):
    """Decides whether an external token's signature is trusted."""

    name: str

    def verify(self, token: str) -> bool: ...


class UnverifiedSignature:
    """
    Accepts every signature.

    Only appropriate behind a gateway that has already verified the token.
    """

    name = "unverified"

    def verify(self, token: str) -> bool:
        return True


class _JwtVerifier:
    """Shared PyJWT decode for the verifying variants."""

    name = "jwt"

    def __init__(
        self,
        algorithms: List[str],
        audience: Optional[str] = None,
        issuer: Optional[str] = None,
    ) -> None:
        self.algorithms = algorithms
        self.audience = audience
        self.issuer = issuer

    def _key_for(self, token: str) -> Any:
        raise NotImplementedError

    def verify(self, token: str) -> bool:
        try:
            jwt.decode(
                token,
                self._key_for(token),
                algorithms=self.algorithms,
                audience=self.audience,
                issuer=self.issuer,
                # Expiry is judged by extract_external_identity against our clock
                options={"verify_exp": False, "verify_aud": self.audience is not None},
            )
            return True
        except (PyJWTError, PyJWKClientError) as e:
            logger.info("External token signature rejected by %s verifier: %s", self.name, e)
            return False


class SharedSecretVerifier(_JwtVerifier):
    """HMAC verification with a secret shared with the issuer."""

    name = "shared_secret"

    def __init__(self, secret: str, audience: Optional[str] = None, issuer: Optional[str] = None) -> None:
        super().__init__(["HS256"], audience, issuer)
        self._secret = secret

    def _key_for(self, token: str) -> Any:
        return self._secret


class JwksVerifier(_JwtVerifier):
    """Public-key verification against the issuer's published JWKS."""

    name = "jwks"

    def __init__(
        self,
        jwks_url: str,
        algorithms: List[str],
        audience: Optional[str] = None,
        issuer: Optional[str] = None,
        jwk_client: Optional[PyJWKClient] = None,
        timeout_seconds: float = 5.0,
    ) -> None:
        super().__init__(algorithms, audience, issuer)
        # Key set fetches block; callers run verification off the event loop
        self._jwk_client = jwk_client or PyJWKClient(jwks_url, timeout=timeout_seconds)

    def _key_for(self, token: str) -> Any:
        return self._jwk_client.get_signing_key_from_jwt(token).key


def build_signature_verifier(config: Config) -> SignatureVerifier:
    """Build the verifier selected by EXTERNAL_TOKEN_TRUST."""
    if config.external_token_trust == "shared_secret":
        return SharedSecretVerifier(
            config.external_token_secret,
            audience=config.external_token_audience,
            issuer=config.external_token_issuer,
        )
    if config.external_token_trust == "jwks":
        return JwksVerifier(
            config.external_jwks_url,
            config.external_token_algorithms,
            audience=config.external_token_audience,
            issuer=config.external_token_issuer,
            timeout_seconds=config.external_jwks_timeout_seconds,
        )
    logger.warning(
        "EXTERNAL_TOKEN_TRUST=unverified: external token signatures are NOT checked; "
        "only run this behind a gateway that verifies them"
    )
    return UnverifiedSignature()


# ---------------------------------------------------------------------------
# Token service
# ---------------------------------------------------------------------------

def _b64url_decode(segment: str) -> bytes:
    padded = segment + "=" * (-len(segment) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


class TokenService:
    """
    Issues and validates identity assertions.
    """

    def __init__(
        self,
        secret: str,
        verifier: SignatureVerifier,
        clock: Optional[Clock] = None,
        max_age_seconds: int = 0,
    ) -> None:
        if not secret:
            raise ValueError("TokenService requires a non-empty secret")
        self._secret = secret.encode("utf-8")
        self.verifier = verifier
        self.clock = clock or SystemClock()
        self.max_age_seconds = max_age_seconds

    @classmethod
    def from_config(cls, config: Config, clock: Optional[Clock] = None) -> "TokenService":
        return cls(
            config.token_secret,
            build_signature_verifier(config),
            clock=clock,
            max_age_seconds=config.self_signed_token_max_age_seconds,
        )

    def _sign(self, data: str) -> str:
        return hmac.new(self._secret, data.encode("utf-8"), hashlib.sha256).hexdigest()

    def issue_self_signed_token(self, subject_id: str) -> str:
        """
        Create a self-signed token for `subject_id`.

        Args:
            subject_id: Subject to assert; must not contain ':'

        Returns:
            base64 of "subject:timestampMillis:hexHMAC"
        """
        if not subject_id or ":" in subject_id:
            raise ValueError("subject_id must be non-empty and must not contain ':'")
        data = f"{subject_id}:{self.clock.now_ms()}"
        raw = f"{data}:{self._sign(data)}"
        return base64.b64encode(raw.encode("utf-8")).decode("ascii")

    def verify_self_signed_token(self, token: str) -> TokenCheck:
        """
        Validate a self-signed token.

        Returns:
            TokenCheck with a SelfSignedIdentity, or a rejection:
            MALFORMED if it does not decode into exactly three fields,
            SIGNATURE_MISMATCH if the HMAC does not match,
            EXPIRED if older than the configured max age.
        """
        try:
            decoded = base64.b64decode(token.encode("ascii"), validate=True).decode("utf-8")
        except (binascii.Error, UnicodeError, ValueError):
            return TokenCheck.reject(RejectionReason.MALFORMED, "Invalid token format")

        parts = decoded.split(":")
        if len(parts) != 3 or not all(parts):
            return TokenCheck.reject(RejectionReason.MALFORMED, "Invalid token format")

        subject, timestamp, signature = parts
        try:
            issued_at_ms = int(timestamp)
        except ValueError:
            return TokenCheck.reject(RejectionReason.MALFORMED, "Invalid token timestamp")

        expected = self._sign(f"{subject}:{timestamp}")
        if not hmac.compare_digest(signature.encode("utf-8"), expected.encode("utf-8")):
            return TokenCheck.reject(RejectionReason.SIGNATURE_MISMATCH, "Token signature invalid")

        if self.max_age_seconds > 0:
            age_ms = self.clock.now_ms() - issued_at_ms
            if age_ms > self.max_age_seconds * MS_PER_SECOND:
                return TokenCheck.reject(RejectionReason.EXPIRED, "Token has expired")

        return TokenCheck.accept(SelfSignedIdentity(subject=subject, issued_at_ms=issued_at_ms))

    def extract_external_identity(self, token: str) -> TokenCheck:
        """
        Read the identity claims of an externally-issued token.

        Structure, required claims and expiry are always checked; the
        signature is delegated to the configured verifier.
        """
        segments = token.split(".")
        if len(segments) != 3:
            return TokenCheck.reject(
                RejectionReason.MALFORMED,
                f"Invalid token format - expected 3 segments, got {len(segments)}",
            )

        try:
            claims: Dict[str, Any] = json.loads(_b64url_decode(segments[1]).decode("utf-8"))
        except (binascii.Error, UnicodeError, ValueError):
            return TokenCheck.reject(RejectionReason.MALFORMED, "Failed to decode token payload")
        if not isinstance(claims, dict):
            return TokenCheck.reject(RejectionReason.MALFORMED, "Token payload is not an object")

        subject = claims.get("sub")
        email = claims.get("email")
        if not subject or not email:
            return TokenCheck.reject(RejectionReason.MISSING_CLAIMS, "Missing sub or email in token")

        exp = claims.get("exp")
        if exp is not None:
            if not isinstance(exp, (int, float)) or isinstance(exp, bool) or not math.isfinite(exp):
                return TokenCheck.reject(RejectionReason.MALFORMED, "Invalid exp claim")
            if exp * MS_PER_SECOND < self.clock.now_ms():
                return TokenCheck.reject(RejectionReason.EXPIRED, "Token has expired")

        if not self.verifier.verify(token):
            return TokenCheck.reject(
                RejectionReason.UNTRUSTED_SIGNATURE, "Token signature could not be verified"
            )

        return TokenCheck.accept(
            ExternalIdentity(
                subject=str(subject),
                email=str(email),
                expires_at=int(exp) if exp is not None else None,
                name=claims.get("name"),
            )
        )
