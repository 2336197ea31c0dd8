import mongomock
import pytest
from fastapi.testclient import TestClient

from auth import AuthUser, create_token
from database import create_document, ensure_indexes, get_db
from main import app
from schemas import Product, User


@pytest.fixture()
def db():
    client = mongomock.MongoClient()
    database = client["retail_test"]
    ensure_indexes(database)
    yield database
    client.close()


@pytest.fixture()
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def make_user(db):
    def _make(name="Asha Rao", is_admin=False):
        email = f"{name.split()[0].lower()}@neomart.dev"
        user_id = create_document(db, "user", User(name=name, email=email, isAdmin=is_admin))
        return AuthUser(id=user_id, name=name, email=email, is_admin=is_admin)

    return _make


@pytest.fixture()
def make_product(db):
    def _make(name="Steel Bottle", price=499.0, image="https://cdn.neomart.dev/bottle.png"):
        product = Product(
            name=name,
            description=f"{name} description",
            category="Home",
            price=price,
            countInStock=10,
            image=image,
        )
        return create_document(db, "product", product)

    return _make


@pytest.fixture()
def user(make_user):
    return make_user()


@pytest.fixture()
def other_user(make_user):
    return make_user("Vikram Shah")


@pytest.fixture()
def headers_for():
    """Bearer header for a stored user."""

    def _headers(user):
        return {"Authorization": f"Bearer {create_token({'id': user.id})}"}

    return _headers
