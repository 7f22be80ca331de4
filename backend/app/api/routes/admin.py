"""
Admin Routes for Identity Maintenance

Guarded user deletion: a user holding an active, unexpired subscription
cannot be deleted.
"""

import logging

from fastapi import APIRouter, Depends, Response, status

from app.api.dependencies import IdentityDep, LedgerDep, SessionDep, require_admin

logger = logging.getLogger(__name__)


router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin)]  # Protect ALL admin routes
)


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: int,
    ledger: LedgerDep,
    identity: IdentityDep,
    session: SessionDep,
):
    """
    Delete a user.

    Returns 409 while the user has an active subscription. Historical
    subscriptions and downloads are removed with the user.
    """
    await identity.get_user(user_id)
    await ledger.ensure_user_deletable(user_id)
    await identity.delete_user(user_id)
    await session.commit()
    logger.info(f"Deleted user {user_id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
