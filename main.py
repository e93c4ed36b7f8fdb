import logging
import os
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import List, Optional

from fastapi import Depends, FastAPI, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer
from pymongo.database import Database
from pymongo.errors import PyMongoError

import config
import database
from accounts import AccountService, principal_for
from catalog import Catalog
from database import ensure_indexes, get_db, serialize
from errors import AuthenticationError, AuthorizationError, DependencyError, LivestockMartError, NotFoundError
from mailer import get_mailer
from orders import OrderEngine
from payments import MockGateway
from schemas import (
    AccountOut,
    Category,
    Listing,
    ListingOut,
    LoginPayload,
    OrderCreate,
    OrderOut,
    OrderStatus,
    OtpRequest,
    OtpVerify,
    PaymentIntentRequest,
    PaymentStatusChange,
    RegisterPayload,
    StatusChange,
    UserState,
)
from security import Principal, create_access_token, decode_access_token

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        ensure_indexes(database.db)
        logger.info(f"Connected to MongoDB database {database.DATABASE_NAME}")
    else:
        logger.warning("DATABASE_URL / DATABASE_NAME not set, database routes will fail")
    yield


app = FastAPI(title="LivestockMart API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error mapping

@app.exception_handler(LivestockMartError)
async def marketplace_error_handler(request: Request, exc: LivestockMartError):
    if isinstance(exc, DependencyError):
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message}, headers=headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Invalid request", "errors": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(PyMongoError)
async def database_error_handler(request: Request, exc: PyMongoError):
    logger.exception(f"Database error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": "Database error"})


# Dependencies

def get_accounts(db: Database = Depends(get_db)) -> AccountService:
    return AccountService(db, get_mailer())


def get_catalog(db: Database = Depends(get_db)) -> Catalog:
    return Catalog(db)


def get_gateway(db: Database = Depends(get_db)) -> MockGateway:
    return MockGateway(db)


def get_order_engine(db: Database = Depends(get_db), gateway: MockGateway = Depends(get_gateway)) -> OrderEngine:
    return OrderEngine(db, gateway)


def get_current_account(
    request: Request,
    bearer: Optional[str] = Depends(oauth2_scheme),
    accounts: AccountService = Depends(get_accounts),
) -> Principal:
    token = bearer or request.cookies.get(config.AUTH_COOKIE_NAME)
    if not token:
        raise AuthenticationError()
    claims = decode_access_token(token)
    try:
        account = accounts.get(claims["id"])
    except NotFoundError:
        raise AuthenticationError("Invalid or expired token")
    return principal_for(account)


def get_current_admin(principal: Principal = Depends(get_current_account)) -> Principal:
    if not principal.is_admin:
        raise AuthorizationError("Admin privileges required")
    return principal


def start_session(response: Response, account: dict) -> dict:
    principal = principal_for(account)
    token = create_access_token(principal.id, principal.email, principal.name)
    response.set_cookie(
        config.AUTH_COOKIE_NAME,
        token,
        httponly=True,
        samesite="lax",
        secure=config.IS_PRODUCTION,
        max_age=config.ACCESS_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
    )
    return {"user": AccountOut(**asdict(principal)), "access_token": token, "token_type": "bearer"}


@app.get("/")
def root():
    return {"message": "LivestockMart Backend Running"}


# Simple health and db test
@app.get("/test")
def test_database():
    if database.db is None:
        return {"backend": "ok", "db": "not configured"}
    try:
        collections = database.db.list_collection_names()
        return {"backend": "ok", "db": "ok", "collections": collections}
    except PyMongoError as e:
        return {"backend": "ok", "db": f"error: {str(e)[:80]}"}


# Auth endpoints
@app.post("/api/auth/register", status_code=status.HTTP_201_CREATED)
def register(payload: RegisterPayload, response: Response, accounts: AccountService = Depends(get_accounts)):
    account = accounts.register(payload)
    return start_session(response, account)


@app.post("/api/auth/login")
def login(payload: LoginPayload, response: Response, accounts: AccountService = Depends(get_accounts)):
    account = accounts.authenticate(payload.email, payload.password)
    return start_session(response, account)


@app.post("/api/auth/otp/request")
def request_otp(payload: OtpRequest, accounts: AccountService = Depends(get_accounts)):
    code = accounts.request_otp(payload.email)
    body = {"message": "If the email is registered, a login code has been sent"}
    if code is not None:
        body["dev_code"] = code
    return body


@app.post("/api/auth/otp/verify")
def verify_otp(payload: OtpVerify, response: Response, accounts: AccountService = Depends(get_accounts)):
    account = accounts.verify_otp(payload.email, payload.code)
    return start_session(response, account)


@app.get("/api/auth/me")
def me(principal: Principal = Depends(get_current_account)):
    return {"user": AccountOut(**asdict(principal))}


@app.post("/api/auth/logout")
def logout(response: Response):
    response.delete_cookie(config.AUTH_COOKIE_NAME, samesite="lax", secure=config.IS_PRODUCTION)
    return {"message": "Logged out"}


# Cart, wishlist, addresses
@app.get("/api/user/state")
def get_user_state(principal: Principal = Depends(get_current_account), accounts: AccountService = Depends(get_accounts)):
    return accounts.get_state(principal.id)


@app.put("/api/user/state")
def save_user_state(
    state: UserState,
    principal: Principal = Depends(get_current_account),
    accounts: AccountService = Depends(get_accounts),
):
    accounts.save_state(principal.id, state)
    return {"success": True}


# Livestock public endpoints
@app.get("/api/livestock", response_model=List[ListingOut])
def list_livestock(category: Optional[Category] = None, catalog: Catalog = Depends(get_catalog)):
    return [serialize(doc) for doc in catalog.list_listings(category)]


@app.get("/api/livestock/{listing_id}", response_model=ListingOut)
def get_livestock(listing_id: str, catalog: Catalog = Depends(get_catalog)):
    return serialize(catalog.get_listing(listing_id))


# Admin livestock management
@app.get("/api/admin/livestock", response_model=List[ListingOut])
def admin_list_livestock(
    category: Optional[Category] = None,
    admin: Principal = Depends(get_current_admin),
    catalog: Catalog = Depends(get_catalog),
):
    return [serialize(doc) for doc in catalog.list_listings(category, available_only=False)]


@app.post("/api/admin/livestock", response_model=ListingOut, status_code=status.HTTP_201_CREATED)
def admin_create_livestock(
    listing: Listing,
    admin: Principal = Depends(get_current_admin),
    catalog: Catalog = Depends(get_catalog),
):
    return serialize(catalog.create_listing(listing))


@app.put("/api/admin/livestock/{listing_id}", response_model=ListingOut)
def admin_update_livestock(
    listing_id: str,
    listing: Listing,
    admin: Principal = Depends(get_current_admin),
    catalog: Catalog = Depends(get_catalog),
):
    return serialize(catalog.update_listing(listing_id, listing))


@app.delete("/api/admin/livestock/{listing_id}")
def admin_delete_livestock(
    listing_id: str,
    admin: Principal = Depends(get_current_admin),
    catalog: Catalog = Depends(get_catalog),
):
    catalog.delete_listing(listing_id)
    return {"message": "Item deleted"}


# Orders
@app.get("/api/orders", response_model=List[OrderOut])
def list_my_orders(principal: Principal = Depends(get_current_account), engine: OrderEngine = Depends(get_order_engine)):
    return [serialize(doc) for doc in engine.list_orders(principal)]


@app.post("/api/orders", response_model=OrderOut, status_code=status.HTTP_201_CREATED)
def create_order(
    order: OrderCreate,
    principal: Principal = Depends(get_current_account),
    engine: OrderEngine = Depends(get_order_engine),
):
    return serialize(engine.create_order(principal, order))


@app.get("/api/orders/{order_id}", response_model=OrderOut)
def get_order(order_id: str, principal: Principal = Depends(get_current_account), engine: OrderEngine = Depends(get_order_engine)):
    return serialize(engine.get_order(principal, order_id))


@app.put("/api/orders/{order_id}", response_model=OrderOut)
def update_order_status(
    order_id: str,
    payload: StatusChange,
    principal: Principal = Depends(get_current_account),
    engine: OrderEngine = Depends(get_order_engine),
):
    return serialize(engine.update_status(principal, order_id, payload.status))


@app.post("/api/orders/{order_id}/cancel", response_model=OrderOut)
def cancel_order(order_id: str, principal: Principal = Depends(get_current_account), engine: OrderEngine = Depends(get_order_engine)):
    return serialize(engine.cancel_order(principal, order_id))


# Orders admin
@app.get("/api/admin/orders", response_model=List[OrderOut])
def admin_list_orders(
    status: Optional[OrderStatus] = None,
    admin: Principal = Depends(get_current_admin),
    engine: OrderEngine = Depends(get_order_engine),
):
    return [serialize(doc) for doc in engine.list_orders(admin, status=status, all_accounts=True)]


@app.put("/api/admin/orders/{order_id}/payment", response_model=OrderOut)
def admin_update_payment(
    order_id: str,
    payload: PaymentStatusChange,
    admin: Principal = Depends(get_current_admin),
    engine: OrderEngine = Depends(get_order_engine),
):
    return serialize(engine.update_payment_status(order_id, payload.payment_status))


# Mock payment endpoint
@app.post("/api/payments/intent")
def create_payment_intent(
    payload: PaymentIntentRequest,
    principal: Principal = Depends(get_current_account),
    gateway: MockGateway = Depends(get_gateway),
):
    return gateway.create_intent(payload.amount, principal.id)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
