import logging
import traceback
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import APIRouter, Cookie, Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from auth_service import AuthService, make_password_context
from config import Settings, configure_logging, get_settings
from database import MongoConnection, MongoStore
from errors import ApiError, TokenExpiredError, TokenInvalidError
from garment_service import GarmentService
from repository import GarmentRepository, UserRepository
from responses import ServiceResponse
from schemas import GarmentCreate, GarmentUpdate, LoginInput, RefreshInput, RegisterInput
from tokens import TokenService

logger = logging.getLogger(__name__)

REFRESH_COOKIE = "refreshToken"

bearer = HTTPBearer(auto_error=False)


# -----------------------------
# Utilities
# -----------------------------
def error_response(status_code: int, message: str, **extra: Any) -> JSONResponse:
    body: Dict[str, Any] = {"success": False, "message": message, "statusCode": status_code}
    body.update(extra)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def respond(result: ServiceResponse) -> JSONResponse:
    if not result.success:
        raise ApiError(result.message, result.status_code)
    return JSONResponse(status_code=result.status_code, content=jsonable_encoder(result, by_alias=True))


def set_refresh_cookie(response: JSONResponse, settings: Settings, token: str) -> None:
    response.set_cookie(
        REFRESH_COOKIE,
        token,
        httponly=True,
        secure=not settings.is_development,
        samesite="lax",
        max_age=settings.refresh_token_expire_days * 24 * 60 * 60,
        path="/",
    )


def clear_refresh_cookie(response: JSONResponse, settings: Settings) -> None:
    response.delete_cookie(REFRESH_COOKIE, path="/", samesite="lax", secure=not settings.is_development)


# Dependencies resolve collaborators from app.state, built in the lifespan

def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_garment_service(request: Request) -> GarmentService:
    return request.app.state.garment_service


def get_current_user_id(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
) -> str:
    if credentials is None or not credentials.credentials:
        raise ApiError("Access token required", 401)
    tokens: TokenService = request.app.state.token_service
    try:
        payload = tokens.verify_access_token(credentials.credentials)
    except TokenExpiredError:
        raise ApiError("Access token expired", 403)
    except TokenInvalidError:
        raise ApiError("Invalid access token", 403)
    return payload["id"]


# -----------------------------
# Health
# -----------------------------
health_router = APIRouter()


@health_router.get("/health")
def health(request: Request):
    connection: MongoConnection = request.app.state.connection
    return {
        "success": True,
        "message": "Everything is healthy and up and running",
        "database": "Connected" if connection.is_connected else "Not Connected",
    }


# -----------------------------
# Auth
# -----------------------------
auth_router = APIRouter(prefix="/auth", tags=["auth"])


@auth_router.post("/register")
async def register(payload: RegisterInput, auth: AuthService = Depends(get_auth_service)):
    return respond(await auth.register(payload.username, payload.email, payload.password))


@auth_router.post("/login")
async def login(
    payload: LoginInput,
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_app_settings),
):
    result = await auth.login(payload.email, payload.password)
    response = respond(result)
    set_refresh_cookie(response, settings, result.data["refreshToken"])
    return response


@auth_router.post("/refresh")
async def refresh(
    payload: Optional[RefreshInput] = None,
    refresh_cookie: Optional[str] = Cookie(None, alias=REFRESH_COOKIE),
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_app_settings),
):
    token = (payload.refresh_token if payload else None) or refresh_cookie
    if not token:
        raise ApiError("Refresh token not found", 401)

    result = await auth.refresh_access_token(token)
    if not result.success:
        response = error_response(result.status_code, result.message)
        clear_refresh_cookie(response, settings)
        return response

    response = respond(result)
    set_refresh_cookie(response, settings, result.data["refreshToken"])
    return response


@auth_router.post("/logout")
async def logout(
    user_id: str = Depends(get_current_user_id),
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_app_settings),
):
    response = respond(await auth.logout(user_id))
    clear_refresh_cookie(response, settings)
    return response


@auth_router.get("/profile")
async def profile(user_id: str = Depends(get_current_user_id), auth: AuthService = Depends(get_auth_service)):
    return respond(await auth.get_profile(user_id))


# -----------------------------
# Garments
# -----------------------------
garments_router = APIRouter(prefix="/garments", tags=["garments"])


@garments_router.post("")
async def add_garment(payload: GarmentCreate, garments: GarmentService = Depends(get_garment_service)):
    return respond(await garments.add_garments(payload.model_dump()))


@garments_router.get("")
async def list_garments(page: int = 1, limit: int = 10, garments: GarmentService = Depends(get_garment_service)):
    return respond(await garments.get_all_garments(page, limit))


@garments_router.get("/search/name")
async def search_garments(
    name: str,
    page: int = 1,
    limit: int = 10,
    garments: GarmentService = Depends(get_garment_service),
):
    return respond(await garments.search_garments_by_name(name, page, limit))


@garments_router.get("/{garment_id}")
async def get_garment(garment_id: str, garments: GarmentService = Depends(get_garment_service)):
    return respond(await garments.get_garment_by_id(garment_id))


@garments_router.patch("/{garment_id}")
async def update_garment(
    garment_id: str,
    payload: GarmentUpdate,
    garments: GarmentService = Depends(get_garment_service),
):
    return respond(await garments.update_garment(garment_id, payload.model_dump(exclude_unset=True)))


@garments_router.delete("/{garment_id}")
async def delete_garment(garment_id: str, garments: GarmentService = Depends(get_garment_service)):
    return respond(await garments.delete_garment(garment_id))


# -----------------------------
# App
# -----------------------------
def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        logger.info("%s %s -> %d %s", request.method, request.url.path, exc.status_code, exc.message)
        extra = {"context": exc.context} if exc.context else {}
        return error_response(exc.status_code, exc.message, **extra)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in exc.errors()
        ]
        return error_response(400, "Validation failed", errors=errors)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        extra = {}
        if settings.is_development:
            extra["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return error_response(500, "INTERNAL_SERVER_ERROR", **extra)


def create_app(settings: Optional[Settings] = None, connection: Optional[MongoConnection] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    connection = connection or MongoConnection(
        settings.database_url,
        settings.database_name,
        max_retries=settings.db_connect_retries,
        retry_delay=settings.db_retry_delay_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await connection.connect()
        await connection.ensure_indexes()
        tokens = TokenService(settings)
        app.state.token_service = tokens
        app.state.auth_service = AuthService(
            UserRepository(MongoStore(connection.collection("users"))),
            tokens,
            make_password_context(settings.bcrypt_rounds),
        )
        app.state.garment_service = GarmentService(
            GarmentRepository(MongoStore(connection.collection("garments"))),
            max_page_limit=settings.max_page_limit,
        )
        yield
        await connection.disconnect()

    app = FastAPI(title="Garment Catalog API", lifespan=lifespan)
    app.state.settings = settings
    app.state.connection = connection

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app, settings)
    app.include_router(health_router)
    app.include_router(auth_router, prefix="/v1")
    app.include_router(garments_router, prefix="/v1")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    port = get_settings().port
    uvicorn.run(app, host="0.0.0.0", port=port)
