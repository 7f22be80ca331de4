"""
API Dependencies

FastAPI dependency injection for authentication and services.

Security: bearer tokens are issued by the identity service and verified
here with the shared HS256 secret. ``sub`` carries the integer user id as
a string and ``role`` is USER or ADMIN. Never decode without verification.
"""

import logging
from typing import Annotated, AsyncGenerator, Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.config.settings import get_settings
from app.domain.subscription import Principal, UserRole
from app.infrastructure.exceptions import ConfigurationError, ForbiddenError
from app.infrastructure.db.dependencies import SessionDep
from app.infrastructure.payments.stripe_service import StripeService, get_stripe_service
from app.infrastructure.services.analytics_service import AnalyticsService
from app.infrastructure.services.checkout_service import CheckoutService
from app.infrastructure.services.collaborators import IdentityService
from app.infrastructure.services.payment_reconciler import PaymentEventReconciler
from app.infrastructure.services.plan_catalog import PlanCatalogService
from app.infrastructure.services.quota_enforcer import QuotaEnforcer
from app.infrastructure.services.subscription_ledger import SubscriptionLedger


logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def decode_access_token(token: str) -> Principal:
    """
    Verify a bearer token and build the principal it asserts.

    Raises:
        ConfigurationError: JWT_SECRET not configured
        HTTPException 401: token expired, tampered with, or missing claims
    """
    settings = get_settings()
    if not settings.jwt_secret:
        raise ConfigurationError("JWT_SECRET is not configured", missing_keys=["JWT_SECRET"])

    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
        )
    except jwt.InvalidTokenError as e:
        logger.warning("JWT verification failed: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or unverifiable token",
        )

    try:
        user_id = int(payload["sub"])
        role = UserRole(payload.get("role", UserRole.USER.value))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token claims",
        )

    return Principal(user_id=user_id, role=role)


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Principal:
    """
    Authenticated caller from the Authorization header.

    Raises:
        HTTPException 401: token missing, expired, or invalid.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return decode_access_token(credentials.credentials)


async def require_admin(
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    """Allow only the privileged role."""
    if not principal.is_admin:
        logger.warning(f"User {principal.user_id} attempted an admin operation")
        raise ForbiddenError("Admin privileges required")
    return principal


PrincipalDep = Annotated[Principal, Depends(get_current_principal)]
AdminDep = Annotated[Principal, Depends(require_admin)]


# =============================================================================
# Service Providers
# =============================================================================

async def get_plan_catalog(session: SessionDep) -> AsyncGenerator[PlanCatalogService, None]:
    yield PlanCatalogService(session)


async def get_subscription_ledger(session: SessionDep) -> AsyncGenerator[SubscriptionLedger, None]:
    yield SubscriptionLedger(session)


async def get_quota_enforcer(session: SessionDep) -> AsyncGenerator[QuotaEnforcer, None]:
    yield QuotaEnforcer(session)


async def get_analytics_service(session: SessionDep) -> AsyncGenerator[AnalyticsService, None]:
    yield AnalyticsService(session)


async def get_identity_service(session: SessionDep) -> AsyncGenerator[IdentityService, None]:
    yield IdentityService(session)


async def get_payment_reconciler(
    session: SessionDep,
    stripe_service: StripeService = Depends(get_stripe_service),
) -> AsyncGenerator[PaymentEventReconciler, None]:
    yield PaymentEventReconciler(session, stripe_service)


async def get_checkout_service(
    session: SessionDep,
    stripe_service: StripeService = Depends(get_stripe_service),
) -> AsyncGenerator[CheckoutService, None]:
    yield CheckoutService(session, stripe_service)


PlanCatalogDep = Annotated[PlanCatalogService, Depends(get_plan_catalog)]
LedgerDep = Annotated[SubscriptionLedger, Depends(get_subscription_ledger)]
QuotaDep = Annotated[QuotaEnforcer, Depends(get_quota_enforcer)]
AnalyticsDep = Annotated[AnalyticsService, Depends(get_analytics_service)]
IdentityDep = Annotated[IdentityService, Depends(get_identity_service)]
ReconcilerDep = Annotated[PaymentEventReconciler, Depends(get_payment_reconciler)]
CheckoutDep = Annotated[CheckoutService, Depends(get_checkout_service)]
StripeDep = Annotated[StripeService, Depends(get_stripe_service)]
