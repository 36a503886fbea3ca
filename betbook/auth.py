"""
API key authentication.

Each account carries its own key; the ``X-API-Key`` header resolves the
caller's Account row, and the role on that row decides what it may do.
"""

from fastapi import Depends, Security, HTTPException, status
from fastapi.security import APIKeyHeader
from sqlalchemy import select
from sqlalchemy.orm import Session

from betbook.core.game_config import ROLE_ADMIN, ROLE_SUBADMIN
from betbook.models import Account, get_db

# API Key header
API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)


def verify_api_key(
    api_key: str = Security(API_KEY_HEADER),
    db: Session = Depends(get_db),
) -> Account:
    """
    Verify API key and return the caller's account

    Usage in FastAPI routes:
        @app.get("/api/me")
        def me(account: Account = Depends(verify_api_key)):
            return {"balance": account.balance}
    """
    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key required. Include 'X-API-Key' header.",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    account = db.execute(select(Account).where(Account.api_key == api_key)).scalar_one_or_none()
    if account is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    return account


def verify_operator(account: Account = Security(verify_api_key)) -> Account:
    """Admin or sub-admin"""
    if account.role not in (ROLE_ADMIN, ROLE_SUBADMIN):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Operator access required"
        )
    return account


def verify_admin(account: Account = Security(verify_api_key)) -> Account:
    """
    Admin-only routes (event management, force settlement)

    Usage:
        @app.post("/admin/events")
        def create(account: Account = Depends(verify_admin)):
            ...
    """
    if account.role != ROLE_ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )

    return account
