"""API key authentication for the serviceability endpoints"""

from typing import List, Optional
from fastapi import HTTPException, Header
from serviceability.config import settings


def _require_key(x_api_key: Optional[str], valid_keys: List[str]) -> str:
    if not x_api_key:
        raise HTTPException(status_code=401, detail="API key required")
    if x_api_key not in valid_keys:
        raise HTTPException(status_code=401, detail="Invalid API key")
    return x_api_key


async def verify_api_key(x_api_key: Optional[str] = Header(None)) -> str:
    """Any configured key may query serviceability"""
    return _require_key(x_api_key, settings.get_api_keys())


async def verify_admin_key(x_api_key: Optional[str] = Header(None)) -> str:
    """Only admin keys may invalidate the catalog cache"""
    key = _require_key(x_api_key, settings.get_api_keys())
    if key not in settings.get_admin_api_keys():
        raise HTTPException(status_code=403, detail="Admin API key required")
    return key
