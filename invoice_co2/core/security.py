import hmac

from fastapi import Header, HTTPException

from invoice_co2.core.config import get_settings


async def verify_api_key(x_api_key: str = Header(default="")) -> None:
    settings = get_settings()
    if settings.api_key and not hmac.compare_digest(x_api_key, settings.api_key):
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


async def require_uploader(x_user_id: str = Header(default="")) -> str:
    """Return the caller identity forwarded by the gateway."""
    user_id = x_user_id.strip()
    if not user_id:
        raise HTTPException(
            status_code=401, detail="Authentication required. Please log in."
        )
    return user_id
