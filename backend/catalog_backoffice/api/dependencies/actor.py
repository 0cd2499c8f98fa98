"""Actor identity supplied by the upstream authentication layer."""

from fastapi import Header, HTTPException, status


def get_actor(x_actor_id: str | None = Header(None, alias="X-Actor-Id")) -> str:
    """Return the verified actor id forwarded by the gateway."""
    if not x_actor_id or not x_actor_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Actor-Id header",
        )
    return x_actor_id.strip()
