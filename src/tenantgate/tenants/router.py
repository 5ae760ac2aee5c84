"""Tenant API router.

Registration is anonymous (and rate limited by the registration middleware);
everything else requires the super-admin key.
"""

from fastapi import APIRouter, Depends, Query

from tenantgate.common.security import require_super_admin
from tenantgate.tenants.schemas import (
    SetupTokenClaim,
    SetupTokenClaimResponse,
    TenantCreate,
    TenantRegisterResponse,
    TenantResponse,
)
from tenantgate.tenants.service import public_id, to_response

router = APIRouter()

REGISTER_PATH = "/api/tenants/register"


def _get_service():
    from tenantgate.deps import get_tenant_service
    return get_tenant_service()


def _get_db():
    from tenantgate.deps import get_db
    return get_db()


@router.post(REGISTER_PATH, response_model=TenantRegisterResponse, status_code=201)
async def register_tenant(body: TenantCreate):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        registered = await svc.register(session, body)
        return TenantRegisterResponse(
            id=public_id(registered.tenant),
            identifier=registered.tenant.identifier,
            setup_token=registered.setup_token,
            setup_token_expires_at=registered.setup_token_expires_at,
        )


@router.get("/api/tenants", response_model=list[TenantResponse])
async def list_tenants(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    _=Depends(require_super_admin),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        tenants = await svc.list_tenants(session, page=page, page_size=page_size)
        return [to_response(t) for t in tenants]


@router.get("/api/tenants/{identifier}", response_model=TenantResponse)
async def get_tenant(identifier: str, _=Depends(require_super_admin)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        return to_response(await svc.get(session, identifier))


@router.delete("/api/tenants/{identifier}/{tenant_id}", status_code=204)
async def delete_tenant(identifier: str, tenant_id: str, _=Depends(require_super_admin)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        await svc.delete(session, identifier, tenant_id)


@router.post("/{tenant}/api/setup/claim", response_model=SetupTokenClaimResponse)
async def claim_setup_token(tenant: str, body: SetupTokenClaim):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        await svc.claim_setup_token(session, tenant, body.token)
    return SetupTokenClaimResponse(tenant=tenant)
