"""Access token minting and verification (HMAC-signed JWT)"""

import uuid
from datetime import datetime, timezone
from typing import Iterable

from jose import JWTError, jwt
from pydantic import ValidationError

from auth_service.core.clock import Clock, SystemClock, ensure_utc
from auth_service.core.config import TokenConfig, logger
from auth_service.core.errors import ConfigurationError, InvalidAccessToken
from auth_service.schemas.token import AccessTokenClaims, MintedAccessToken, TokenType


class AccessTokenMinter:
    """
    Stateless minter for short-lived access tokens

    Holds only immutable configuration, safe to share between requests.
    """

    def __init__(self, config: TokenConfig, clock: Clock | None = None):
        """
        Args:
            config: Token configuration (signing key, issuer, audience, lifetime)
            clock: Time source used when callers do not pass ``now``

        Raises:
            ConfigurationError: If the signing key is missing
        """
        if not config.signing_key or not config.signing_key.strip():
            raise ConfigurationError(
                "Signing key is not configured",
                details={"setting": "AUTH_SERVICE__SIGNING_KEY"},
            )
        self._config = config
        self._clock = clock or SystemClock()

    @property
    def lifetime_seconds(self) -> int:
        """Access token lifetime in seconds"""
        return int(self._config.access_token_lifetime.total_seconds())

    def mint(
        self,
        subject_id: str,
        display_name: str,
        roles: Iterable[str],
        now: datetime | None = None,
    ) -> MintedAccessToken:
        """
        Create a signed access token

        Args:
            subject_id: User id (subject)
            display_name: Name shown to resource servers
            roles: Role names, one claim entry per distinct role
            now: Issue time, defaults to the clock

        Returns:
            MintedAccessToken with the encoded token and its claims
        """
        if not subject_id:
            raise ValueError("subject_id must not be empty")
        if not display_name:
            raise ValueError("display_name must not be empty")

        issued_at = ensure_utc(now or self._clock.now())
        expires_at = issued_at + self._config.access_token_lifetime

        claims = AccessTokenClaims(
            iss=self._config.issuer,
            sub=subject_id,
            aud=self._config.audience,
            exp=int(expires_at.timestamp()),
            iat=int(issued_at.timestamp()),
            nbf=int(issued_at.timestamp()),
            jti=str(uuid.uuid4()),
            name=display_name,
            roles=list(dict.fromkeys(roles)),
            type=TokenType.ACCESS,
        )

        token = jwt.encode(
            claims.model_dump(mode="json"),
            self._config.signing_key,
            algorithm=self._config.signing_algorithm,
        )

        logger.debug(
            f"Access token minted: jti={claims.jti}",
            extra={"subject_id": subject_id, "jti": claims.jti, "roles": claims.roles},
        )

        return MintedAccessToken(token=token, claims=claims, expires_in=self.lifetime_seconds)

    def verify(self, token: str, now: datetime | None = None) -> AccessTokenClaims:
        """
        Verify signature, issuer, audience, lifetime and type of an access token

        Args:
            token: Encoded JWT
            now: Verification time, defaults to the clock

        Returns:
            Decoded claims

        Raises:
            InvalidAccessToken: On any verification failure
        """
        try:
            payload = jwt.decode(
                token,
                self._config.signing_key,
                algorithms=[self._config.signing_algorithm],
                audience=self._config.audience,
                issuer=self._config.issuer,
                # Lifetime is checked below against the injected clock
                options={"verify_exp": False, "verify_nbf": False},
            )
            claims = AccessTokenClaims(**payload)
        except (JWTError, ValidationError) as e:
            logger.warning(
                f"Access token rejected: {type(e).__name__}",
                extra={"error": str(e)},
            )
            raise InvalidAccessToken() from e

        timestamp = ensure_utc(now or self._clock.now()).timestamp()
        if timestamp >= claims.exp:
            raise InvalidAccessToken("Access token expired", details={"jti": claims.jti})
        if timestamp < claims.nbf:
            raise InvalidAccessToken("Access token not yet valid", details={"jti": claims.jti})

        return claims

    @staticmethod
    def expires_at(claims: AccessTokenClaims) -> datetime:
        """Expiry of the given claims as an aware datetime"""
        return datetime.fromtimestamp(claims.exp, tz=timezone.utc)
