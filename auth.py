"""
Request-scoped dependencies: service factories, bearer-token resolution and
the role gate.
"""

from typing import Callable, Optional

from fastapi import BackgroundTasks, Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from errors import AuthenticationFailed, Forbidden, MissingToken, Unexpected
from ownership import VendorResources
from principals import USER_KIND, VENDOR_KIND, Principal, PrincipalKind, PrincipalService
from schemas import Role

bearer_scheme = HTTPBearer(auto_error=False)


def get_store(request: Request):
    store = request.app.state.store
    if store is None:
        raise Unexpected("Database not available", error="database_unavailable")
    return store


def _service_factory(kind: PrincipalKind) -> Callable[..., PrincipalService]:
    def factory(request: Request, background_tasks: BackgroundTasks) -> PrincipalService:
        state = request.app.state
        return PrincipalService(
            kind,
            get_store(request),
            state.hasher,
            state.tokens,
            state.notifier,
            otp_ttl_minutes=state.settings.otp_ttl_minutes,
            clock=state.clock,
            defer=background_tasks.add_task,
        )
    return factory


get_user_service = _service_factory(USER_KIND)
get_vendor_service = _service_factory(VENDOR_KIND)


def _authenticate(request: Request, creds: Optional[HTTPAuthorizationCredentials],
                  service: PrincipalService, require_verified: bool) -> Principal:
    if not creds or not creds.credentials:
        raise MissingToken("Authentication required: No token provided")
    claims = request.app.state.tokens.verify(creds.credentials)
    if claims.get("kind") != service.kind.key or not claims.get("sub"):
        raise AuthenticationFailed("Authentication failed", error="invalid_token")
    principal = service.resolve(claims["sub"], require_verified=require_verified)
    request.state.principal = principal
    return principal


def current_user(request: Request,
                 creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
                 service: PrincipalService = Depends(get_user_service)) -> Principal:
    return _authenticate(request, creds, service, require_verified=False)


def current_vendor(request: Request,
                   creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
                   service: PrincipalService = Depends(get_vendor_service)) -> Principal:
    return _authenticate(request, creds, service, require_verified=True)


def require_roles(*roles: Role) -> Callable[..., Principal]:
    allowed = frozenset(roles)

    def gate(user: Principal = Depends(current_user)) -> Principal:
        if user.role not in allowed:
            raise Forbidden("Access denied: Insufficient permissions")
        return user
    return gate


def get_vendor_resources(request: Request, vendor: Principal = Depends(current_vendor)) -> VendorResources:
    return VendorResources(get_store(request), vendor.oid,
                           full_text_search=request.app.state.settings.full_text_search)
