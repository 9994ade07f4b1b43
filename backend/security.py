import secrets
from fastapi import HTTPException, Header

import config


def verify_admin(x_api_key: str = Header(default="")):
    if x_api_key != config.ADMIN_API_KEY:
        raise HTTPException(status_code=401, detail="Invalid admin API key")


def generate_link_id(nbytes: int = 16) -> str:
    """URL-safe random id used for admin and trust share links (22 chars for 16 bytes)."""
    return secrets.token_urlsafe(nbytes)
