"""Owner identity resolution from identity-provider bearer tokens."""

import jwt
from fastapi import Header, HTTPException
from starlette.concurrency import run_in_threadpool

from paydash.common.config import settings
from paydash.common.logging import logger, owner_id_ctx


class OwnerTokenVerifier:
    """Verify RS256 bearer tokens against the issuer's JWKS and return `sub`."""

    def __init__(self, domain: str, audience: str, jwks_client: jwt.PyJWKClient | None = None) -> None:
        self.issuer = f"https://{domain}/"
        self.audience = audience
        self.jwks_client = jwks_client or jwt.PyJWKClient(f"https://{domain}/.well-known/jwks.json", cache_keys=True)

    def owner_id(self, token: str) -> str:
        signing_key = self.jwks_client.get_signing_key_from_jwt(token)
        claims = jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            audience=self.audience,
            issuer=self.issuer,
        )
        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            raise jwt.InvalidTokenError("token has no subject")
        return subject


_verifier: OwnerTokenVerifier | None = None


def get_verifier() -> OwnerTokenVerifier:
    global _verifier
    if _verifier is None:
        _verifier = OwnerTokenVerifier(settings.auth_domain, settings.auth_audience)
    return _verifier


async def get_owner_id(authorization: str | None = Header(default=None)) -> str:
    """FastAPI dependency: resolve the calling owner or reject with 401.

    Async so `owner_id_ctx` is set in the request task the route runs in.
    """

    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="invalid or missing authentication token")
    token = authorization.split(" ", 1)[1].strip()
    try:
        # JWKS lookups may block on the network.
        owner_id = await run_in_threadpool(get_verifier().owner_id, token)
    except jwt.PyJWTError as exc:
        logger.warning("owner_token_rejected error=%s", exc)
        raise HTTPException(status_code=401, detail="invalid or missing authentication token") from exc
    owner_id_ctx.set(owner_id)
    return owner_id
