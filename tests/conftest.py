import copy
from typing import Any, Callable, Dict, List

import pytest
from fastapi.testclient import TestClient
from pydantic import BaseModel as PydanticBaseModel

from marketplace.core.config import settings
from marketplace.core.errors import StorageError
from marketplace.core.security import create_access_token, get_password_hash
from marketplace.db.firebase_ops import get_firestore_ops_instance
from marketplace.main import app
from marketplace.models.schemas import Caller, Role, User
from marketplace.services.channels import ChannelHub, get_channel_hub
from marketplace.services.profiles import FreelancerProfiles

# Cheapest bcrypt cost; hashing strength is not under test
settings.BCRYPT_ROUNDS = 4


def _as_dict(data_model: Any) -> Dict[str, Any]:
    if isinstance(data_model, PydanticBaseModel):
        return data_model.model_dump()
    return copy.deepcopy(data_model)


def _result(document_id: str, data: Dict[str, Any], pydantic_model):
    data = {"id": document_id, **copy.deepcopy(data)}
    return pydantic_model(**data) if pydantic_model else data


def _matches(data: Dict[str, Any], field: str, operator: str, value: Any) -> bool:
    if operator == "==":
        return data.get(field) == value
    if operator == "in":
        return data.get(field) in value
    raise NotImplementedError(operator)


class InMemoryTransaction:
    """Buffers writes like a Firestore transaction and refuses reads after the first write."""

    def __init__(self, store: "InMemoryFirestoreOps"):
        self.store = store
        self.writes: List[Callable[[Dict[str, Dict[str, dict]]], None]] = []

    def _check_read(self):
        assert not self.writes, "Firestore transactions require all reads before writes"

    def get(self, collection_name, document_id, pydantic_model=None):
        self._check_read()
        return self.store.get(collection_name, document_id, pydantic_model)

    def query(self, collection_name, field, operator, value, pydantic_model=None):
        self._check_read()
        return self.store.query(collection_name, field, operator, value, pydantic_model)

    def set(self, collection_name, document_id, data_model):
        data = _as_dict(data_model)

        def op(collections):
            self.store.check_fault("set", collection_name)
            collections.setdefault(collection_name, {})[document_id] = data

        self.writes.append(op)
        return document_id

    def update(self, collection_name, document_id, updates):
        updates = copy.deepcopy(updates)

        def op(collections):
            self.store.check_fault("update", collection_name)
            docs = collections.setdefault(collection_name, {})
            if document_id not in docs:
                raise StorageError()
            docs[document_id].update(updates)

        self.writes.append(op)

    def delete(self, collection_name, document_id):
        def op(collections):
            self.store.check_fault("delete", collection_name)
            collections.setdefault(collection_name, {}).pop(document_id, None)

        self.writes.append(op)

    def increment(self, collection_name, document_id, field, amount):
        def op(collections):
            doc = collections.setdefault(collection_name, {}).setdefault(document_id, {})
            doc[field] = doc.get(field, 0) + amount

        self.writes.append(op)

    def append(self, collection_name, document_id, field, value):
        def op(collections):
            doc = collections.setdefault(collection_name, {}).setdefault(document_id, {})
            values = doc.setdefault(field, [])
            if value not in values:
                values.append(value)

        self.writes.append(op)


class InMemoryFirestoreOps:
    """Dictionary-backed implementation of the FirestoreBaseModel interface."""

    def __init__(self):
        self.collections: Dict[str, Dict[str, dict]] = {}
        self.faults = set()

    def fail_on(self, operation: str, collection_name: str):
        self.faults.add((operation, collection_name))

    def check_fault(self, operation: str, collection_name: str):
        if (operation, collection_name) in self.faults:
            raise StorageError()

    def docs(self, collection_name: str) -> Dict[str, dict]:
        return self.collections.setdefault(collection_name, {})

    def save(self, collection_name, data_model, document_id=None):
        self.check_fault("save", collection_name)
        data = _as_dict(data_model)
        document_id = document_id or data.get("id")
        self.docs(collection_name)[document_id] = data
        return document_id

    def get(self, collection_name, document_id, pydantic_model=None):
        data = self.docs(collection_name).get(document_id)
        if data is None:
            return None
        return _result(document_id, data, pydantic_model)

    def get_all(self, collection_name, limit=None, pydantic_model=None):
        items = list(self.docs(collection_name).items())[:limit]
        return [_result(doc_id, data, pydantic_model) for doc_id, data in items]

    def query(self, collection_name, field, operator, value, pydantic_model=None):
        return [
            _result(doc_id, data, pydantic_model)
            for doc_id, data in self.docs(collection_name).items()
            if _matches(data, field, operator, value)
        ]

    def update(self, collection_name, document_id, updates):
        self.check_fault("update", collection_name)
        if document_id not in self.docs(collection_name):
            raise StorageError()
        self.docs(collection_name)[document_id].update(copy.deepcopy(updates))

    def delete(self, collection_name, document_id):
        self.check_fault("delete", collection_name)
        self.docs(collection_name).pop(document_id, None)

    def count(self, collection_name, field=None, value=None):
        docs = self.docs(collection_name).values()
        if field is None:
            return len(docs)
        return sum(1 for data in docs if data.get(field) == value)

    def run_transaction(self, work):
        tx = InMemoryTransaction(self)
        result = work(tx)
        staged = copy.deepcopy(self.collections)
        for op in tx.writes:
            op(staged)
        self.collections = staged
        return result


@pytest.fixture
def store():
    return InMemoryFirestoreOps()


@pytest.fixture
def hub():
    return ChannelHub()


@pytest.fixture
def api(store, hub):
    app.dependency_overrides[get_firestore_ops_instance] = lambda: store
    app.dependency_overrides[get_channel_hub] = lambda: hub
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def make_user(store, role: Role, username: str, password: str = "password123") -> User:
    user = User(username=username, email=f"{username}@example.com", role=role)
    record = user.model_dump()
    record["hashed_password"] = get_password_hash(password)
    store.save("users", record, document_id=user.id)
    if role == Role.FREELANCER:
        FreelancerProfiles(store).create_profile(user.id)
    return user


def auth_headers(user: User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token({'sub': user.id})}"}


def as_caller(user: User) -> Caller:
    return Caller(id=user.id, role=user.role)


PROJECT_PAYLOAD = {
    "title": "Marketplace frontend",
    "description": "Build the React frontend",
    "budget": 5000,
    "skills": ["React", "Node"],
}


def create_project(api, owner, **overrides):
    payload = {**PROJECT_PAYLOAD, **overrides}
    response = api.post("/projects/", json=payload, headers=auth_headers(owner))
    assert response.status_code == 201, response.text
    return response.json()


def apply(api, freelancer, project_id, bid_amount=4500):
    response = api.post(
        "/applications/",
        json={"project_id": project_id, "proposal": "I can do this", "bid_amount": bid_amount},
        headers=auth_headers(freelancer),
    )
    assert response.status_code == 201, response.text
    return response.json()


def assign(api, owner, freelancer, project_id):
    """Apply as ``freelancer`` and have ``owner`` accept it."""
    application = apply(api, freelancer, project_id)
    response = api.put(f"/applications/{application['id']}/accept", headers=auth_headers(owner))
    assert response.status_code == 200, response.text
    return application


@pytest.fixture
def client_user(store):
    return make_user(store, Role.CLIENT, "client_c")


@pytest.fixture
def other_client(store):
    return make_user(store, Role.CLIENT, "client_d")


@pytest.fixture
def freelancer(store):
    return make_user(store, Role.FREELANCER, "freelancer_f1")


@pytest.fixture
def freelancer2(store):
    return make_user(store, Role.FREELANCER, "freelancer_f2")


@pytest.fixture
def admin(store):
    return make_user(store, Role.ADMIN, "admin_a")
