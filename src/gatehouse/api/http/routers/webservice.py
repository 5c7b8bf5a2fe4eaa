"""Webservice (machine-to-machine) routes."""

from fastapi import APIRouter, Depends

from src.gatehouse.api.http.deps import require_webservice_auth
from src.gatehouse.runtime.request_context import WebServiceContext

router = APIRouter(prefix="/ws/v1", tags=["webservice"])


@router.get("/whoami", response_model=WebServiceContext)
async def whoami(
    context: WebServiceContext = Depends(require_webservice_auth()),
) -> WebServiceContext:
    """Trust context of the authenticated client."""
    return context
