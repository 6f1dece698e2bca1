"""FastAPI dependency utilities."""

from fastapi import HTTPException, Request, status

from docledger.application.container import ServiceContainer
from docledger.domain.entities import ActorContext


def get_container(request: Request) -> ServiceContainer:
    """Return the service container created by the application lifespan."""

    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"message": "Service is starting up", "code": "unavailable"},
        )
    return container


def get_actor_context(request: Request) -> ActorContext:
    """Build the attribution data recorded on ledger entries.

    Authentication is handled upstream; the caller identity arrives in the
    ``X-User-Id`` header.
    """

    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        ip_address = forwarded_for.split(",")[0].strip() or None
    else:
        ip_address = request.client.host if request.client else None
    return ActorContext(
        user_id=request.headers.get("x-user-id") or None,
        user_agent=request.headers.get("user-agent") or None,
        ip_address=ip_address,
    )

