"""
FastAPI Application Entry Point

Group Lunch Order - Hybrid Architecture
Supports both Mock services (development) and hosted services (production).

Pages:
    - GET /: ordering page (today's groups, menu, summary, countdown)
    - GET /admin: store list / sign-in form
    - GET /admin/stores/{id}: menu editor

API:
    - /auth/*: admin sign-in session
    - /api/stores, /api/products: catalog (writes need an admin)
    - /api/groups, /api/orders: group windows and orders
    - /ws/changes: change notifications for open pages
    - GET /health: System health check

Author: Khalil Bannouri
Version: 1.0.0
"""

import asyncio
import logging
import sys
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError
from fastapi import (
    Depends,
    FastAPI,
    File,
    Form,
    HTTPException,
    Query,
    Request,
    Response,
    UploadFile,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

# Windows-specific event loop policy
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Internal imports
from group_order.core.auth import (
    authenticate_admin,
    ensure_admin,
    get_current_admin,
    get_optional_admin,
)
from group_order.core.config import get_settings, setup_logging
from group_order.database import async_session_maker, engine, get_db, init_db
from group_order.models import AdminUser, DailyGroup
from group_order.schemas import (
    AdminSessionResponse,
    CountdownResponse,
    ErrorResponse,
    GroupCreate,
    GroupOrdersResponse,
    GroupResponse,
    HealthResponse,
    ImportResult,
    LoginRequest,
    MessageResponse,
    OrderCancel,
    OrderCreate,
    OrderResponse,
    ProductCreate,
    ProductResponse,
    ProductUpdate,
    ShareLinkResponse,
    StoreResponse,
    StoreUpdate,
    StoreUpsert,
    TodayGroupsResponse,
)
from group_order.services import catalog, groups
from group_order.services.catalog import ImageUpload
from group_order.services.errors import (
    ConfirmationMismatchError,
    DuplicateProductError,
    GroupExpiredError,
    GroupNotFoundError,
    GroupOrderError,
    ImageUploadError,
    InvalidDeadlineError,
    OrderNotFoundError,
    ProductNotFoundError,
    StoreNotFoundError,
)
from group_order.services.excel_manager import ExcelManager, SpreadsheetError
from group_order.services.export import (
    build_share_link,
    build_summary_pdf,
    format_money,
    local_deadline,
)
from group_order.services.ordering import as_utc, describe_time_left
from group_order.services.realtime import ChangeEvent, get_change_feed
from group_order.services.storage import get_storage_service
from group_order.tasks import archive_group_summary

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)

# Template configuration
templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
templates.env.filters["local_time"] = local_deadline
templates.env.filters["money"] = format_money
templates.env.filters["utc_iso"] = lambda value: as_utc(value).isoformat()

# Store images in development mode
UPLOAD_DIR = Path(settings.upload_directory)
UPLOAD_DIR.mkdir(parents=True, exist_ok=True)

# Domain refusal -> HTTP status
ERROR_STATUS = {
    StoreNotFoundError: status.HTTP_404_NOT_FOUND,
    ProductNotFoundError: status.HTTP_404_NOT_FOUND,
    GroupNotFoundError: status.HTTP_404_NOT_FOUND,
    OrderNotFoundError: status.HTTP_404_NOT_FOUND,
    GroupExpiredError: status.HTTP_409_CONFLICT,
    DuplicateProductError: status.HTTP_409_CONFLICT,
    ConfirmationMismatchError: status.HTTP_403_FORBIDDEN,
    InvalidDeadlineError: status.HTTP_400_BAD_REQUEST,
    ImageUploadError: status.HTTP_502_BAD_GATEWAY,
}


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

async def bootstrap_admin() -> None:
    """Create the admin from ADMIN_EMAIL/ADMIN_PASSWORD if it does not exist."""
    if not (settings.admin_email and settings.admin_password):
        return
    async with async_session_maker() as session:
        await ensure_admin(
            session,
            settings.admin_email,
            settings.admin_password,
            reset_password=False,
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Timezone: {settings.timezone}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    # Initialize database
    await init_db()
    logger.info("✅ Database initialized")

    await bootstrap_admin()

    # Change feed
    feed = get_change_feed()
    try:
        await feed.start()
        logger.info(f"✅ Change Feed: {feed.provider_name}")
    except Exception as e:
        logger.warning(f"⚠️ Change feed unavailable, pages will not auto-refresh: {e}")

    # Log service configuration
    storage_service = get_storage_service()
    logger.info(f"✅ Storage Service: {storage_service.provider_name}")

    # Validate production config
    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"⚠️ Missing production config: {missing}")

    logger.info("=" * 60)
    logger.info("✅ Application ready!")
    logger.info("=" * 60)

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await feed.stop()
    await engine.dispose()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Group lunch ordering: open a group for a store with a deadline, "
        "collect orders until it closes, and share the summary."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount("/uploads", StaticFiles(directory=str(UPLOAD_DIR)), name="uploads")


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

async def notify_change(event: ChangeEvent) -> None:
    """Publish a change notification; open pages reload on receipt."""
    try:
        await get_change_feed().publish(event)
    except Exception as e:
        logger.warning(f"Change notification {event.table}/{event.action} dropped: {e}")


@asynccontextmanager
async def persistence_errors(db: AsyncSession, action: str):
    """Turn database failures into 'Failed to <action>: <message>' responses."""
    try:
        yield
    except IntegrityError as e:
        await db.rollback()
        logger.warning(f"Failed to {action}: {e.orig}")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Failed to {action}: {e.orig}",
        )
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception(f"Failed to {action}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to {action}: {e}",
        )


def validation_detail(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error.get("loc", ()))
        parts.append(f"{field}: {error.get('msg')}" if field else error.get("msg", ""))
    return "; ".join(parts)


async def read_image(image: Optional[UploadFile]) -> Optional[ImageUpload]:
    """Read an optional image field; browsers send an empty part when none is chosen."""
    if image is None or not image.filename:
        return None

    content = await image.read()
    if not content:
        return None
    if image.content_type and not image.content_type.startswith("image/"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Not an image: {image.content_type}",
        )
    if len(content) > settings.max_image_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Image larger than {settings.max_image_bytes // (1024 * 1024)} MB",
        )
    return ImageUpload(content=content, filename=image.filename, content_type=image.content_type)


def group_summary_payload(group: DailyGroup, details: GroupOrdersResponse) -> dict[str, Any]:
    """Archive task payload (JSON serializable)."""
    return {
        "group_id": group.id,
        "group_name": group.display_name,
        "store_name": group.store.name if group.store else None,
        "order_date": group.order_date.isoformat() if group.order_date else None,
        "end_time": group.end_time.isoformat() if group.end_time else None,
        "summary": [row.model_dump() for row in details.summary],
    }


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=int(timedelta(minutes=settings.access_token_expire_minutes).total_seconds()),
        httponly=True,
        samesite="lax",
        secure=settings.is_production,
    )


# =============================================================================
# PAGES
# =============================================================================

@app.get("/", response_class=HTMLResponse, tags=["Pages"])
async def ordering_page(
    request: Request,
    group: Optional[int] = Query(None, description="Group to show"),
    db: AsyncSession = Depends(get_db),
) -> HTMLResponse:
    """Today's groups as tabs, the active group's menu, summary and countdown."""
    today_groups, active = await groups.get_active_group(db, group)
    stores = await catalog.list_stores(db)

    products = []
    details = None
    if active is not None:
        products = await catalog.list_products(db, active.store_id, order_by="price")
        details = await groups.load_group_orders(db, active.id)

    default_deadline = (datetime.now(settings.tz) + timedelta(hours=1)).replace(
        second=0, microsecond=0
    )

    return templates.TemplateResponse(
        request,
        "index.html",
        {
            "settings": settings,
            "groups": today_groups,
            "active": active,
            "stores": stores,
            "products": products,
            "details": details,
            "today": settings.today(),
            "default_deadline": default_deadline.strftime("%Y-%m-%dT%H:%M"),
        },
    )


@app.get("/admin", response_class=HTMLResponse, tags=["Pages"])
async def admin_page(
    request: Request,
    admin: Optional[AdminUser] = Depends(get_optional_admin),
    db: AsyncSession = Depends(get_db),
) -> HTMLResponse:
    """Store list for a signed-in admin, the sign-in form otherwise."""
    stores = await catalog.list_stores(db) if admin else []
    return templates.TemplateResponse(
        request,
        "admin.html",
        {"settings": settings, "admin": admin, "stores": stores},
    )


@app.get("/admin/stores/{store_id}", response_class=HTMLResponse, tags=["Pages"])
async def menu_editor_page(
    request: Request,
    store_id: int,
    admin: Optional[AdminUser] = Depends(get_optional_admin),
    db: AsyncSession = Depends(get_db),
):
    if admin is None:
        return RedirectResponse(url="/admin", status_code=status.HTTP_303_SEE_OTHER)

    store = await catalog.get_store(db, store_id)
    products = await catalog.list_products(db, store_id, order_by="id")
    return templates.TemplateResponse(
        request,
        "menu_editor.html",
        {"settings": settings, "admin": admin, "store": store, "products": products},
    )


# =============================================================================
# AUTH ENDPOINTS
# =============================================================================

@app.post("/auth/login", response_model=AdminSessionResponse, tags=["Auth"])
async def login(
    data: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> AdminSessionResponse:
    """Email/password sign-in; sets the session cookie."""
    token = await authenticate_admin(db, data.email, data.password)
    if token is None:
        logger.warning(f"Failed sign-in for {data.email}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    set_session_cookie(response, token)
    logger.info(f"Admin signed in: {data.email}")
    return AdminSessionResponse(authenticated=True, email=data.email.strip().lower())


@app.post("/auth/logout", response_model=AdminSessionResponse, tags=["Auth"])
async def logout(response: Response) -> AdminSessionResponse:
    response.delete_cookie(settings.session_cookie_name)
    return AdminSessionResponse(authenticated=False)


@app.get("/auth/session", response_model=AdminSessionResponse, tags=["Auth"])
async def current_session(
    admin: Optional[AdminUser] = Depends(get_optional_admin),
) -> AdminSessionResponse:
    if admin is None:
        return AdminSessionResponse(authenticated=False)
    return AdminSessionResponse(authenticated=True, email=admin.email)


# =============================================================================
# STORE ENDPOINTS
# =============================================================================

@app.get("/api/stores", response_model=list[StoreResponse], tags=["Stores"])
async def list_stores(db: AsyncSession = Depends(get_db)) -> list[StoreResponse]:
    stores = await catalog.list_stores(db)
    return [StoreResponse.model_validate(store) for store in stores]


@app.post(
    "/api/stores",
    response_model=StoreResponse,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    tags=["Stores"],
    summary="Create or update a store by name",
)
async def upsert_store(
    name: str = Form(...),
    phone: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    admin: AdminUser = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
) -> StoreResponse:
    try:
        data = StoreUpsert(name=name, phone=phone)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=validation_detail(e))

    upload = await read_image(image)

    async with persistence_errors(db, "save store"):
        store, created = await catalog.upsert_store(db, data, get_storage_service(), upload)

    await notify_change(
        ChangeEvent(table="stores", action="insert" if created else "update", record_id=store.id)
    )
    return StoreResponse.model_validate(store)


@app.patch(
    "/api/stores/{store_id}",
    response_model=StoreResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    tags=["Stores"],
)
async def update_store(
    store_id: int,
    name: Optional[str] = Form(None),
    phone: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    admin: AdminUser = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
) -> StoreResponse:
    fields = {key: value for key, value in {"name": name, "phone": phone}.items() if value is not None}
    try:
        data = StoreUpdate(**fields)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=validation_detail(e))

    upload = await read_image(image)

    async with persistence_errors(db, "update store"):
        store = await catalog.update_store(db, store_id, data, get_storage_service(), upload)

    await notify_change(ChangeEvent(table="stores", action="update", record_id=store.id))
    return StoreResponse.model_validate(store)


@app.delete(
    "/api/stores/{store_id}",
    response_model=MessageResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Stores"],
    summary="Delete a store with its menu and groups",
)
async def delete_store(
    store_id: int,
    admin: AdminUser = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    async with persistence_errors(db, "delete store"):
        store = await catalog.delete_store(db, store_id, get_storage_service())

    await notify_change(ChangeEvent(table="stores", action="delete", record_id=store_id))
    await notify_change(ChangeEvent(table="daily_groups", action="delete", store_id=store_id))
    return MessageResponse(message=f"Store '{store.name}' deleted")


# =============================================================================
# MENU ENDPOINTS
# =============================================================================

@app.get(
    "/api/stores/{store_id}/products",
    response_model=list[ProductResponse],
    tags=["Menu"],
)
async def list_products(
    store_id: int,
    order: str = Query("price", pattern="^(price|id)$"),
    db: AsyncSession = Depends(get_db),
) -> list[ProductResponse]:
    await catalog.get_store(db, store_id)
    products = await catalog.list_products(db, store_id, order_by=order)
    return [ProductResponse.model_validate(product) for product in products]


@app.post(
    "/api/stores/{store_id}/products",
    response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    tags=["Menu"],
)
async def create_product(
    store_id: int,
    data: ProductCreate,
    admin: AdminUser = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
) -> ProductResponse:
    async with persistence_errors(db, "add product"):
        product = await catalog.create_product(db, store_id, data)

    await notify_change(
        ChangeEvent(table="products", action="insert", record_id=product.id, store_id=store_id)
    )
    return ProductResponse.model_validate(product)


@app.post(
    "/api/stores/{store_id}/products/import",
    response_model=ImportResult,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    tags=["Menu"],
    summary="Upsert menu items from a spreadsheet",
)
async def import_products(
    store_id: int,
    file: UploadFile = File(...),
    admin: AdminUser = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
) -> ImportResult:
    """
    First sheet, no header: item name | price | optional note.
    Existing names are updated, new names added.
    """
    await catalog.get_store(db, store_id)

    content = await file.read()
    try:
        rows = ExcelManager.parse_menu_file(content, file.filename or "")
    except SpreadsheetError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if not rows:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No valid rows found (expected: name | price | optional note)",
        )

    async with persistence_errors(db, "import menu"):
        result = await catalog.upsert_products(db, store_id, rows)

    await notify_change(ChangeEvent(table="products", action="update", store_id=store_id))
    return ImportResult(
        success=True,
        message=f"Imported {result.processed} items ({result.inserted} new, {result.updated} updated)",
        processed=result.processed,
    )


@app.patch(
    "/api/products/{product_id}",
    response_model=ProductResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Menu"],
)
async def update_product(
    product_id: int,
    data: ProductUpdate,
    admin: AdminUser = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
) -> ProductResponse:
    async with persistence_errors(db, "update product"):
        product = await catalog.update_product(db, product_id, data)

    await notify_change(
        ChangeEvent(table="products", action="update", record_id=product.id, store_id=product.store_id)
    )
    return ProductResponse.model_validate(product)


@app.delete(
    "/api/products/{product_id}",
    response_model=MessageResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Menu"],
)
async def delete_product(
    product_id: int,
    admin: AdminUser = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    async with persistence_errors(db, "delete product"):
        product = await catalog.delete_product(db, product_id)

    await notify_change(
        ChangeEvent(table="products", action="delete", record_id=product_id, store_id=product.store_id)
    )
    return MessageResponse(message=f"'{product.name}' removed from the menu")


# =============================================================================
# GROUP ENDPOINTS
# =============================================================================

@app.get("/api/groups/today", response_model=TodayGroupsResponse, tags=["Groups"])
async def today_groups(
    active: Optional[int] = Query(None, description="Group the page showed before"),
    db: AsyncSession = Depends(get_db),
) -> TodayGroupsResponse:
    today, selected = await groups.get_active_group(db, active)
    return TodayGroupsResponse(
        groups=[GroupResponse.model_validate(group) for group in today],
        active_group_id=selected.id if selected else None,
    )


@app.post(
    "/api/groups",
    response_model=GroupResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    tags=["Groups"],
    summary="Start a group order",
)
async def open_group(
    data: GroupCreate,
    db: AsyncSession = Depends(get_db),
) -> GroupResponse:
    async with persistence_errors(db, "start group"):
        group = await groups.open_group(db, data)

    await notify_change(
        ChangeEvent(table="daily_groups", action="insert", record_id=group.id, store_id=group.store_id)
    )
    return GroupResponse.model_validate(group)


@app.delete(
    "/api/groups/{group_id}",
    response_model=MessageResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Groups"],
    summary="Close a group and remove its orders",
)
async def close_group(
    group_id: int,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    group = await groups.get_group(db, group_id)
    details = await groups.load_group_orders(db, group_id)

    if details.summary:
        try:
            archive_group_summary.delay(group_summary_payload(group, details))
        except Exception as e:
            logger.warning(f"Summary archive for group #{group_id} not queued: {e}")

    async with persistence_errors(db, "close group"):
        await groups.close_group(db, group_id)

    await notify_change(
        ChangeEvent(table="daily_groups", action="delete", record_id=group_id, store_id=group.store_id)
    )
    return MessageResponse(message=f"{group.display_name} closed")


@app.get(
    "/api/groups/{group_id}/orders",
    response_model=GroupOrdersResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def group_orders(
    group_id: int,
    db: AsyncSession = Depends(get_db),
) -> GroupOrdersResponse:
    """Orders (newest first), per-item summary, totals and expiry."""
    return await groups.load_group_orders(db, group_id)


@app.post(
    "/api/groups/{group_id}/orders",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def place_order(
    group_id: int,
    data: OrderCreate,
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    async with persistence_errors(db, "place order"):
        order = await groups.place_order(db, group_id, data)

    await notify_change(
        ChangeEvent(table="orders", action="insert", record_id=order.id, group_id=group_id)
    )
    return OrderResponse.model_validate(order)


@app.post(
    "/api/orders/{order_id}/cancel",
    response_model=MessageResponse,
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    tags=["Orders"],
    summary="Cancel an order (re-type the purchaser name)",
)
async def cancel_order(
    order_id: int,
    data: OrderCancel,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    async with persistence_errors(db, "cancel order"):
        order = await groups.cancel_order(db, order_id, data)

    await notify_change(
        ChangeEvent(table="orders", action="delete", record_id=order_id, group_id=order.group_id)
    )
    return MessageResponse(message=f"Order for {order.item_name} cancelled")


@app.get(
    "/api/groups/{group_id}/countdown",
    response_model=CountdownResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Groups"],
)
async def group_countdown(
    group_id: int,
    db: AsyncSession = Depends(get_db),
) -> CountdownResponse:
    group = await groups.get_group(db, group_id)
    state = describe_time_left(group.end_time)
    return CountdownResponse(
        group_id=group.id,
        end_time=group.end_time,
        expired=state.expired,
        seconds_left=state.seconds_left,
        text=state.text,
    )


@app.get(
    "/api/groups/{group_id}/share-link",
    response_model=ShareLinkResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Groups"],
)
async def group_share_link(
    group_id: int,
    db: AsyncSession = Depends(get_db),
) -> ShareLinkResponse:
    group = await groups.get_group(db, group_id)
    url, text = build_share_link(group.id, group.store.name, group.display_name, group.end_time)
    return ShareLinkResponse(url=url, text=text)


@app.get(
    "/api/groups/{group_id}/summary.pdf",
    responses={200: {"content": {"application/pdf": {}}}, 404: {"model": ErrorResponse}},
    tags=["Groups"],
)
async def group_summary_pdf(
    group_id: int,
    db: AsyncSession = Depends(get_db),
) -> Response:
    group = await groups.get_group(db, group_id)
    details = await groups.load_group_orders(db, group_id)

    content = build_summary_pdf(
        group.store.name, group.display_name, group.end_time, details.summary
    )
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="group-{group_id}-summary.pdf"'},
    )


@app.get(
    "/api/groups/{group_id}/summary.xlsx",
    responses={404: {"model": ErrorResponse}},
    tags=["Groups"],
)
async def group_summary_workbook(
    group_id: int,
    db: AsyncSession = Depends(get_db),
) -> Response:
    await groups.get_group(db, group_id)
    details = await groups.load_group_orders(db, group_id)

    content = ExcelManager.summary_workbook_bytes([row.model_dump() for row in details.summary])
    return Response(
        content=content,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f'attachment; filename="group-{group_id}-summary.xlsx"'},
    )


# =============================================================================
# CHANGE NOTIFICATIONS
# =============================================================================

@app.websocket("/ws/changes")
async def changes_socket(websocket: WebSocket) -> None:
    """
    Push one JSON message per row change to the page.

    The subscription is registered before the handshake completes so a
    change made right after connecting is not missed. When the feed is
    down the socket is closed with 1011 and the page retries later.
    """
    feed = get_change_feed()
    async with AsyncExitStack() as stack:
        try:
            events = await stack.enter_async_context(feed.subscribe())
        except (RuntimeError, RedisError) as e:
            logger.warning(f"Change feed unavailable, refusing WebSocket: {e}")
            await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
            return

        await websocket.accept()

        async def forward() -> None:
            async for event in events:
                await websocket.send_text(event.to_json())

        forwarder = asyncio.create_task(forward())
        try:
            while True:
                # Pages never send; this only detects the disconnect
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            forwarder.cancel()
            await asyncio.gather(forwarder, return_exceptions=True)


# =============================================================================
# HEALTH ENDPOINT
# =============================================================================

@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: AsyncSession = Depends(get_db)
) -> HealthResponse:
    """Verify all system components are operational."""

    # Check database
    db_status = "healthy"
    try:
        await db.execute(select(func.count(DailyGroup.id)))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    # Check Redis (Celery broker)
    if settings.celery_task_always_eager and settings.is_development:
        redis_status = "not used"
    else:
        redis_status = "healthy"
        client = aioredis.from_url(settings.redis_url, socket_timeout=2)
        try:
            await client.ping()
        except Exception as e:
            redis_status = f"unhealthy: {str(e)}"
            logger.error(f"Redis health check failed: {e}")
        finally:
            await client.aclose()

    # Check storage service
    storage_service = get_storage_service()
    storage_status = "healthy" if await storage_service.health_check() else "unhealthy"

    # Check change feed
    feed = get_change_feed()
    feed_status = "healthy" if await feed.health_check() else "unhealthy"

    overall = "operational" if all(
        s in ("healthy", "not used")
        for s in [db_status, redis_status, storage_status, feed_status]
    ) else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        redis=redis_status,
        storage_service=f"{storage_service.provider_name}: {storage_status}",
        change_feed=f"{feed.provider_name}: {feed_status}",
        timestamp=datetime.now(),
    )


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(GroupOrderError)
async def domain_error_handler(request: Request, exc: GroupOrderError) -> JSONResponse:
    """Refusals from the catalog and group services."""
    status_code = next(
        (code for error_type, code in ERROR_STATUS.items() if isinstance(exc, error_type)),
        status.HTTP_400_BAD_REQUEST,
    )
    logger.info(f"{type(exc).__name__} on {request.url.path}: {exc}")

    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": type(exc).__name__,
            "detail": str(exc),
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )


# =============================================================================
# DEVELOPMENT SERVER
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "group_order.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
    )
