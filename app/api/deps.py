"""
FastAPI dependencies (DB session, current account)
"""
from fastapi import Request, HTTPException, status

from app.infrastructure.db.session import get_db as _get_db


# Re-export get_db for routers
get_db = _get_db


def get_account_id(request: Request) -> int:
    """
    Account of the signed-in user, taken from the session cookie.
    Login itself happens upstream; the account id is the user id.

    Raises:
        HTTPException(401): no session
    """
    user_id = request.session.get("user_id")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )
    return int(user_id)
