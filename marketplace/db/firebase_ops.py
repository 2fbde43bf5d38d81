import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, TypeVar

import firebase_admin
from firebase_admin import credentials, firestore
from google.api_core.exceptions import GoogleAPIError
from google.cloud.firestore_v1.base_query import FieldFilter
from pydantic import BaseModel as PydanticBaseModel  # Alias Pydantic's BaseModel

from marketplace.core.config import settings
from marketplace.core.errors import StorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FirebaseManager:
    """
    Firebase Firestore Manager for handling database operations
    """
    _instance = None
    _db = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(FirebaseManager, cls).__new__(cls)
        return cls._instance

    def __init__(self):
        if self._db is None:
            self.initialize_firebase()

    def initialize_firebase(self):
        """Initialize Firebase Admin SDK"""
        try:
            app = firebase_admin.get_app()
            self._db = firestore.client(app)
            logger.info("Using existing Firebase app")
            return
        except ValueError:
            pass  # App doesn't exist, so we need to initialize it

        project_id = settings.FIREBASE_PROJECT_ID
        if not project_id and os.path.exists(settings.FIREBASE_CONFIG_PATH):
            with open(settings.FIREBASE_CONFIG_PATH, "r") as f:
                project_id = json.load(f).get("projectId")
            logger.info("Found Firebase project ID %s in %s", project_id, settings.FIREBASE_CONFIG_PATH)

        if os.path.exists(settings.FIREBASE_CREDENTIALS_PATH):
            cred = credentials.Certificate(settings.FIREBASE_CREDENTIALS_PATH)
            logger.info("Initializing Firebase with service account key %s", settings.FIREBASE_CREDENTIALS_PATH)
        else:
            cred = credentials.ApplicationDefault()
            logger.info("Initializing Firebase with application default credentials")

        options = {"projectId": project_id} if project_id else None
        firebase_admin.initialize_app(cred, options)
        self._db = firestore.client()
        logger.info("Firebase Firestore client initialized")

    def get_db(self):
        """Get Firestore database client"""
        return self._db


def _prepare_data_for_firestore(data_model: Any) -> Dict[str, Any]:
    """Converts Pydantic model or dict to Firestore-compatible dict."""
    if isinstance(data_model, PydanticBaseModel):
        return data_model.model_dump()
    if isinstance(data_model, dict):
        return data_model.copy()
    raise ValueError("Data must be a Pydantic model or a dictionary.")


def _to_result(snapshot, pydantic_model: Optional[type[PydanticBaseModel]]) -> Any:
    data = {"id": snapshot.id, **snapshot.to_dict()}
    if pydantic_model:
        return pydantic_model(**data)
    return data


class FirestoreTransaction:
    """
    Operations available inside ``FirestoreBaseModel.run_transaction``.

    Firestore requires every read of a transaction to happen before its first
    write; writes are buffered and committed together.
    """

    def __init__(self, db, transaction):
        self.db = db
        self.transaction = transaction

    def _doc(self, collection_name: str, document_id: str):
        return self.db.collection(collection_name).document(document_id)

    def get(self, collection_name: str, document_id: str, pydantic_model: Optional[type[PydanticBaseModel]] = None) -> Optional[Any]:
        snapshot = self._doc(collection_name, document_id).get(transaction=self.transaction)
        if not snapshot.exists:
            return None
        return _to_result(snapshot, pydantic_model)

    def query(self, collection_name: str, field: str, operator: str, value: Any, pydantic_model: Optional[type[PydanticBaseModel]] = None) -> List[Any]:
        query_ref = self.db.collection(collection_name).where(filter=FieldFilter(field, operator, value))
        return [_to_result(doc, pydantic_model) for doc in query_ref.stream(transaction=self.transaction)]

    def set(self, collection_name: str, document_id: str, data_model: Any) -> str:
        data = _prepare_data_for_firestore(data_model)
        now = datetime.now(timezone.utc)
        data["updated_at"] = now
        data.setdefault("created_at", now)
        self.transaction.set(self._doc(collection_name, document_id), data)
        return document_id

    def update(self, collection_name: str, document_id: str, updates: Dict[str, Any]) -> None:
        updates_copy = updates.copy()
        updates_copy["updated_at"] = datetime.now(timezone.utc)
        self.transaction.update(self._doc(collection_name, document_id), updates_copy)

    def delete(self, collection_name: str, document_id: str) -> None:
        self.transaction.delete(self._doc(collection_name, document_id))

    def increment(self, collection_name: str, document_id: str, field: str, amount: float) -> None:
        # merge=True so a missing counter (or document) starts from zero
        self.transaction.set(self._doc(collection_name, document_id), {field: firestore.Increment(amount)}, merge=True)

    def append(self, collection_name: str, document_id: str, field: str, value: Any) -> None:
        self.transaction.set(self._doc(collection_name, document_id), {field: firestore.ArrayUnion([value])}, merge=True)


class FirestoreBaseModel:
    """
    Base model class for Firestore database operations, adapted for Pydantic.

    Unexpected Firestore failures are logged and raised as ``StorageError``.
    """

    def __init__(self, db=None):
        if db is None:
            db = FirebaseManager().get_db()
        self.db = db

    def save(self, collection_name: str, data_model: Any, document_id: Optional[str] = None) -> str:
        """Save Pydantic model or dictionary to Firestore"""
        data = _prepare_data_for_firestore(data_model)

        now = datetime.now(timezone.utc)
        data["updated_at"] = now
        data.setdefault("created_at", now)

        try:
            if document_id:
                self.db.collection(collection_name).document(document_id).set(data, merge=True)
                return document_id
            _, doc_ref = self.db.collection(collection_name).add(data)
            return doc_ref.id
        except GoogleAPIError as e:
            logger.exception("Error saving to Firestore collection '%s'", collection_name)
            raise StorageError() from e

    def get(self, collection_name: str, document_id: str, pydantic_model: Optional[type[PydanticBaseModel]] = None) -> Optional[Any]:
        """Get document from Firestore by ID, optionally parsing into a Pydantic model."""
        try:
            doc = self.db.collection(collection_name).document(document_id).get()
        except GoogleAPIError as e:
            logger.exception("Error getting document '%s' from Firestore collection '%s'", document_id, collection_name)
            raise StorageError() from e
        if not doc.exists:
            return None
        return _to_result(doc, pydantic_model)

    def get_all(self, collection_name: str, limit: Optional[int] = None, pydantic_model: Optional[type[PydanticBaseModel]] = None) -> List[Any]:
        """Get all documents from a collection, optionally parsing into Pydantic models."""
        collection_ref = self.db.collection(collection_name)
        if limit:
            collection_ref = collection_ref.limit(limit)
        try:
            return [_to_result(doc, pydantic_model) for doc in collection_ref.stream()]
        except GoogleAPIError as e:
            logger.exception("Error getting documents from Firestore collection '%s'", collection_name)
            raise StorageError() from e

    def query(self, collection_name: str, field: str, operator: str, value: Any, pydantic_model: Optional[type[PydanticBaseModel]] = None) -> List[Any]:
        """Query documents by field, optionally parsing into Pydantic models."""
        query_ref = self.db.collection(collection_name).where(filter=FieldFilter(field, operator, value))
        try:
            return [_to_result(doc, pydantic_model) for doc in query_ref.stream()]
        except GoogleAPIError as e:
            logger.exception("Error querying Firestore collection '%s'", collection_name)
            raise StorageError() from e

    def update(self, collection_name: str, document_id: str, updates: Dict[str, Any]) -> None:
        """Update specific fields in a document."""
        updates_copy = updates.copy()
        updates_copy["updated_at"] = datetime.now(timezone.utc)
        try:
            self.db.collection(collection_name).document(document_id).update(updates_copy)
        except GoogleAPIError as e:
            logger.exception("Error updating document '%s' in Firestore collection '%s'", document_id, collection_name)
            raise StorageError() from e

    def delete(self, collection_name: str, document_id: str) -> None:
        """Delete a document from Firestore."""
        try:
            self.db.collection(collection_name).document(document_id).delete()
        except GoogleAPIError as e:
            logger.exception("Error deleting document '%s' from Firestore collection '%s'", document_id, collection_name)
            raise StorageError() from e

    def count(self, collection_name: str, field: Optional[str] = None, value: Any = None) -> int:
        """Count documents, optionally those where ``field == value``."""
        query_ref = self.db.collection(collection_name)
        if field is not None:
            query_ref = query_ref.where(filter=FieldFilter(field, "==", value))
        try:
            results = query_ref.count(alias="total").get()
        except GoogleAPIError as e:
            logger.exception("Error counting Firestore collection '%s'", collection_name)
            raise StorageError() from e
        return int(results[0][0].value)

    def run_transaction(self, work: Callable[[FirestoreTransaction], T]) -> T:
        """
        Run ``work(tx)`` atomically. Exceptions raised by ``work`` roll the
        transaction back and propagate; contention retries are handled by
        the Firestore client.
        """
        transaction = self.db.transaction()

        @firestore.transactional
        def _in_transaction(transaction):
            return work(FirestoreTransaction(self.db, transaction))

        try:
            return _in_transaction(transaction)
        except GoogleAPIError as e:
            logger.exception("Firestore transaction failed")
            raise StorageError() from e


def get_firestore_ops_instance() -> FirestoreBaseModel:
    return FirestoreBaseModel()
