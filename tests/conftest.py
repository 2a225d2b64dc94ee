import mongomock
import pytest
from fastapi.testclient import TestClient

from auth_service import AuthService, make_password_context
from config import Settings
from database import MongoConnection, MongoStore
from garment_service import GarmentService
from main import create_app
from repository import GarmentRepository, UserRepository
from tokens import TokenService


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings():
    return Settings(
        app_env="development",
        database_name="garments_test",
        jwt_access_secret="test-access-secret",
        jwt_refresh_secret="test-refresh-secret",
        bcrypt_rounds=4,
        max_page_limit=50,
    )


@pytest.fixture
def mongo_db():
    client = mongomock.MongoClient(tz_aware=True)
    db = client["garments_test"]
    db["users"].create_index([("email", 1)], unique=True)
    yield db
    client.close()


@pytest.fixture
def garment_repo(mongo_db):
    return GarmentRepository(MongoStore(mongo_db["garments"]))


@pytest.fixture
def user_repo(mongo_db):
    return UserRepository(MongoStore(mongo_db["users"]))


@pytest.fixture
def token_service(settings):
    return TokenService(settings)


@pytest.fixture
def garment_service(garment_repo, settings):
    return GarmentService(garment_repo, max_page_limit=settings.max_page_limit)


@pytest.fixture
def auth_service(user_repo, token_service, settings):
    return AuthService(user_repo, token_service, make_password_context(settings.bcrypt_rounds))


@pytest.fixture
def client(settings):
    connection = MongoConnection(
        "mongodb://localhost:27017",
        settings.database_name,
        client_factory=mongomock.MongoClient,
    )
    app = create_app(settings, connection)
    with TestClient(app) as c:
        yield c


def garment_payload(**overrides):
    data = {
        "name": "Linen Shirt",
        "description": "Breathable summer shirt",
        "price": 49.5,
        "size": "M",
        "availability": "in_stock",
        "vendor": "acme",
        "categories": "shirts",
        "tags": ["summer", "linen"],
        "images": ["uploads/linen-front.jpg"],
    }
    data.update(overrides)
    return data
