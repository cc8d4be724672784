"""
FastAPI Application Entry Point

Restaurant Order Lifecycle API - multi-location ordering with live
order updates for kitchen staff and customers.

Endpoints:
    - POST /api/auth/register: Create an account
    - POST /api/auth/login: Exchange credentials for a bearer token
    - GET /api/auth/profile: Current user
    - PATCH /api/auth/users/{user_id}/role: Assign a role (admin)
    - POST /api/orders: Place an order
    - GET /api/orders: List visible orders
    - GET /api/orders/{order_id}: Get one order
    - PATCH /api/orders/{order_id}/status: Set status (kitchen/admin)
    - PATCH /api/orders/{order_id}/cancel: Cancel a pending order
    - WS /ws: Live order events
    - GET /health: System health check

Author: Khalil Bannouri
Version: 1.0.0
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import (
    Depends,
    FastAPI,
    Query,
    Request,
    WebSocket,
    status,
)
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from restaurant_orders.core.config import get_settings, setup_logging
from restaurant_orders.core.errors import ErrorCategory, OrderingError, ValidationFailure
from restaurant_orders.core.security import (
    AuthenticatedUser,
    CredentialVerifier,
    PasswordService,
    get_credential_verifier,
    get_current_user,
    get_optional_user,
    get_password_service,
    require_roles,
)
from restaurant_orders.database import engine, get_db, get_session_factory, init_db
from restaurant_orders.models import OrderStatus, UserRole
from restaurant_orders.schemas import (
    AuthResponse,
    ErrorResponse,
    HealthResponse,
    LoginRequest,
    OrderCreate,
    OrderDetail,
    OrderEnvelope,
    OrderListResponse,
    OrderResponse,
    Pagination,
    ProfileResponse,
    RegisterRequest,
    RoleChangeRequest,
    StatusUpdate,
    UserResponse,
)
from restaurant_orders.services.accounts import AccountService
from restaurant_orders.services.lifecycle import OrderLifecycleManager, build_lifecycle_manager
from restaurant_orders.services.realtime import (
    ConnectionHandle,
    ConnectionSession,
    EventDistributor,
    get_event_distributor,
)

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    await init_db()
    logger.info("Database initialized")

    distributor = get_event_distributor()
    await distributor.start()
    logger.info(f"Realtime relay: {distributor.relay.provider_name}")

    missing = settings.validate_production_config()
    if missing:
        logger.warning(f"Missing production config: {missing}")

    logger.info("=" * 60)
    logger.info("Application ready!")
    logger.info("=" * 60)

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await distributor.stop()
    await engine.dispose()
    logger.info("Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Order lifecycle for multi-location restaurants: server-priced "
        "orders, role-gated status changes and live order events."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_lifecycle_manager(
    db: AsyncSession = Depends(get_db),
    distributor: EventDistributor = Depends(get_event_distributor),
) -> OrderLifecycleManager:
    return build_lifecycle_manager(db, distributor)


def get_account_service(
    db: AsyncSession = Depends(get_db),
    verifier: CredentialVerifier = Depends(get_credential_verifier),
    passwords: PasswordService = Depends(get_password_service),
) -> AccountService:
    return AccountService(db, verifier, passwords)


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: AsyncSession = Depends(get_db),
    distributor: EventDistributor = Depends(get_event_distributor),
) -> HealthResponse:
    """Verify the database and the realtime relay are operational."""

    db_status = "healthy"
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    relay_ok = await distributor.relay.health_check()
    realtime_status = "healthy" if relay_ok else "unhealthy"

    overall = "operational" if all(
        s == "healthy" for s in [db_status, realtime_status]
    ) else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        realtime=f"{distributor.relay.provider_name}: {realtime_status}",
        connections=distributor.connection_count,
        timestamp=datetime.now(),
    )


# =============================================================================
# AUTH ENDPOINTS
# =============================================================================

@app.post(
    "/api/auth/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    responses={403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    tags=["Auth"],
)
async def register(
    data: RegisterRequest,
    caller: Optional[AuthenticatedUser] = Depends(get_optional_user),
    accounts: AccountService = Depends(get_account_service),
) -> AuthResponse:
    """Create an account. Staff roles require an admin bearer token."""
    user, token = await accounts.register(data, caller=caller)
    return AuthResponse(
        message="User created successfully",
        user=UserResponse.model_validate(user),
        token=token,
    )


@app.post(
    "/api/auth/login",
    response_model=AuthResponse,
    responses={401: {"model": ErrorResponse}},
    tags=["Auth"],
)
async def login(
    data: LoginRequest,
    accounts: AccountService = Depends(get_account_service),
) -> AuthResponse:
    user, token = await accounts.login(data.email, data.password)
    return AuthResponse(
        message="Login successful",
        user=UserResponse.model_validate(user),
        token=token,
    )


@app.get("/api/auth/profile", response_model=ProfileResponse, tags=["Auth"])
async def profile(
    caller: AuthenticatedUser = Depends(get_current_user),
    accounts: AccountService = Depends(get_account_service),
) -> ProfileResponse:
    user = await accounts.get_user(caller.user_id)
    return ProfileResponse(user=UserResponse.model_validate(user))


@app.patch(
    "/api/auth/users/{user_id}/role",
    response_model=ProfileResponse,
    tags=["Auth"],
)
async def change_role(
    user_id: int,
    data: RoleChangeRequest,
    caller: AuthenticatedUser = Depends(require_roles(UserRole.ADMIN)),
    accounts: AccountService = Depends(get_account_service),
) -> ProfileResponse:
    """Assign a role to an account. Admin only."""
    user = await accounts.change_role(caller, user_id, data.role)
    return ProfileResponse(user=UserResponse.model_validate(user))


# =============================================================================
# ORDER API ENDPOINTS
# =============================================================================

@app.post(
    "/api/orders",
    response_model=OrderEnvelope,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
    tags=["Orders"],
    summary="Place Order",
)
async def create_order(
    order_data: OrderCreate,
    caller: AuthenticatedUser = Depends(get_current_user),
    lifecycle: OrderLifecycleManager = Depends(get_lifecycle_manager),
) -> OrderEnvelope:
    """
    Place an order at a location.

    Prices are looked up server-side; the response carries the persisted
    order with its snapshot prices and total.
    """
    logger.info(f"Creating order for user {caller.user_id} at location {order_data.location_id}")
    order = await lifecycle.create_order(caller, order_data.location_id, order_data.to_cart())
    return OrderEnvelope(
        message="Order created successfully",
        order=OrderResponse.model_validate(order),
    )


@app.get(
    "/api/orders",
    response_model=OrderListResponse,
    tags=["Orders"],
    summary="List Orders",
)
async def list_orders(
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    location_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    caller: AuthenticatedUser = Depends(get_current_user),
    lifecycle: OrderLifecycleManager = Depends(get_lifecycle_manager),
) -> OrderListResponse:
    """Retrieve paginated list of orders, newest first."""
    result = await lifecycle.list_orders(
        caller,
        status=status_filter,
        location_id=location_id,
        page=page,
        page_size=limit,
    )
    return OrderListResponse(
        orders=[OrderResponse.model_validate(order) for order in result.orders],
        pagination=Pagination(
            page=result.page,
            limit=result.page_size,
            total=result.total,
            pages=result.pages,
        ),
    )


@app.get(
    "/api/orders/{order_id}",
    response_model=OrderDetail,
    responses={404: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def get_order(
    order_id: int,
    caller: AuthenticatedUser = Depends(get_current_user),
    lifecycle: OrderLifecycleManager = Depends(get_lifecycle_manager),
) -> OrderDetail:
    """Get a specific order by ID."""
    order = await lifecycle.get_order(caller, order_id)
    return OrderDetail(order=OrderResponse.model_validate(order))


@app.patch(
    "/api/orders/{order_id}/status",
    response_model=OrderEnvelope,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def update_order_status(
    order_id: int,
    data: StatusUpdate,
    caller: AuthenticatedUser = Depends(get_current_user),
    lifecycle: OrderLifecycleManager = Depends(get_lifecycle_manager),
) -> OrderEnvelope:
    """Set an order's status. Kitchen and admin only."""
    order = await lifecycle.set_status(caller, order_id, data.status)
    return OrderEnvelope(
        message="Order status updated successfully",
        order=OrderResponse.model_validate(order),
    )


@app.patch(
    "/api/orders/{order_id}/cancel",
    response_model=OrderEnvelope,
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    tags=["Orders"],
)
async def cancel_order(
    order_id: int,
    caller: AuthenticatedUser = Depends(get_current_user),
    lifecycle: OrderLifecycleManager = Depends(get_lifecycle_manager),
) -> OrderEnvelope:
    """Cancel a pending order."""
    order = await lifecycle.cancel_order(caller, order_id)
    return OrderEnvelope(
        message="Order cancelled successfully",
        order=OrderResponse.model_validate(order),
    )


# =============================================================================
# REALTIME ENDPOINT
# =============================================================================

async def _drain_outbox(websocket: WebSocket, handle: ConnectionHandle) -> None:
    """Forward queued pushes to the client, one at a time."""
    while True:
        message = await handle.outbox.get()
        await websocket.send_json(message)


@app.websocket("/ws")
async def realtime_socket(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    verifier: CredentialVerifier = Depends(get_credential_verifier),
    distributor: EventDistributor = Depends(get_event_distributor),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """
    Live order events.

    Authenticates once on connect (``?token=`` or ``Authorization: Bearer``),
    joins the caller's personal channel, then dispatches client commands
    until the socket closes.
    """
    if token is None:
        header = websocket.headers.get("authorization", "")
        if header.lower().startswith("bearer "):
            token = header[7:].strip()

    try:
        user = verifier.verify(token)
    except OrderingError as e:
        logger.info(f"Rejected realtime connection: {e.message}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    async def update_status(caller: AuthenticatedUser, order_id: int, new_status: OrderStatus):
        async with session_factory() as db:
            lifecycle = build_lifecycle_manager(db, distributor)
            return await lifecycle.set_status(caller, order_id, new_status)

    session = ConnectionSession(distributor, user, status_updater=update_status)
    handle = session.open()
    writer: Optional[asyncio.Task] = None

    try:
        await websocket.accept()
        writer = asyncio.create_task(_drain_outbox(websocket, handle))
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes")
            if raw is not None:
                await session.handle_message(raw)
    finally:
        session.close()
        if writer is not None:
            writer.cancel()
            await asyncio.gather(writer, return_exceptions=True)


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(OrderingError)
async def ordering_error_handler(request: Request, exc: OrderingError) -> JSONResponse:
    """Render domain errors with their stable category."""
    if exc.status_code >= 500:
        logger.error(f"{exc.category.value} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render malformed requests as validation failures."""
    errors = exc.errors()
    detail = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ())[1:])}: {err.get('msg')}"
        for err in errors
    ) or "Validation failed"
    return JSONResponse(status_code=400, content=ValidationFailure(detail).to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": ErrorCategory.SERVER_FAULT.value,
            "code": "InternalError",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "restaurant_orders.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )
