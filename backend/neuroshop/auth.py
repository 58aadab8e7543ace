"""
NeuroShop - Request Identity

Authentication happens upstream. The gateway forwards the authenticated
user's ID in the X-User-Id header; this module only reads and checks it.
"""
from fastapi import Header, HTTPException, status

USER_ID_MAX_LENGTH = 64


async def get_current_user_id(x_user_id: str = Header(...)) -> str:
    """
    Dependency to get the current user ID.
    Rejects blank or over-long identifiers.
    """
    user_id = x_user_id.strip()
    if not user_id or len(user_id) > USER_ID_MAX_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"X-User-Id must be 1-{USER_ID_MAX_LENGTH} characters",
        )
    return user_id
