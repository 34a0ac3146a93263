from typing import Annotated, Optional
from fastapi import Depends, Header, Request, HTTPException, status
from uuid import UUID


def get_tenant_id(request: Request) -> UUID:
    """Extract tenant_id from request state set by TenantMiddleware"""
    if not hasattr(request.state, 'tenant_id'):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Tenant context not found. Ensure X-Company-ID header is provided."
        )
    return request.state.tenant_id


def get_acting_user_id(x_user_id: Annotated[Optional[str], Header()] = None) -> Optional[UUID]:
    """Usuario que ejecuta la operación, solo para auditoría (created_by).

    La autenticación vive fuera del ledger; el gateway reenvía el id en X-User-ID.
    """
    if not x_user_id:
        return None
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-User-ID format. Must be a valid UUID"
        )


TenantId = Annotated[UUID, Depends(get_tenant_id)]
ActingUserId = Annotated[Optional[UUID], Depends(get_acting_user_id)]
