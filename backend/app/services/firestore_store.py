import logging
import os
from threading import Lock
from typing import Any, Dict, List, Optional

from google.api_core import exceptions as google_exceptions

from app.models import ServiceDefinition
from app.services.booking_store import StoredRecord
from app.services.catalog import service_from_document
from app.services.errors import BookingNotFoundError, ConflictError, StoreUnavailableError
from app.services.store_calls import run_blocking

logger = logging.getLogger(__name__)


class FirestoreClientProvider:
    """Lazily initializes the Firebase app and hands out its Firestore client."""

    def __init__(self):
        self._lock = Lock()
        self._client = None

    def get_client(self):
        if self._client is not None:
            return self._client
        with self._lock:
            if self._client is not None:
                return self._client
            credentials_path = os.getenv("FIREBASE_CREDENTIALS_PATH", "").strip()
            if not credentials_path:
                raise StoreUnavailableError("Firestore backend selected but FIREBASE_CREDENTIALS_PATH is not set")

            import firebase_admin
            from firebase_admin import credentials, firestore

            try:
                options = {}
                project_id = os.getenv("FIREBASE_PROJECT_ID", "").strip()
                if project_id:
                    options["projectId"] = project_id
                if not firebase_admin._apps:  # pylint: disable=protected-access
                    firebase_admin.initialize_app(credentials.Certificate(credentials_path), options or None)
                self._client = firestore.client()
                logger.info("Firestore client initialized")
            except (ValueError, OSError) as exc:
                logger.exception("Firestore init failed")
                raise StoreUnavailableError("Firestore could not be initialized") from exc
        return self._client


firestore_clients = FirestoreClientProvider()


class FirestoreBookingStore:
    def __init__(self, client: Any = None, collection: Optional[str] = None):
        self._client = client
        self.collection = collection or os.getenv("BOOKINGS_COLLECTION", "bookings")

    @property
    def client(self):
        if self._client is None:
            self._client = firestore_clients.get_client()
        return self._client

    def _doc(self, booking_id: str):
        return self.client.collection(self.collection).document(booking_id)

    def _create_sync(self, booking_id: str, record: Dict[str, Any]) -> None:
        try:
            self._doc(booking_id).create(record)
        except google_exceptions.AlreadyExists as exc:
            raise ConflictError(f"Booking already exists: {booking_id}") from exc
        except google_exceptions.GoogleAPIError as exc:
            logger.exception("Firestore create failed: %s", booking_id)
            raise StoreUnavailableError("Booking store is unavailable") from exc

    def _get_sync(self, booking_id: str) -> Dict[str, Any]:
        try:
            snapshot = self._doc(booking_id).get()
        except google_exceptions.GoogleAPIError as exc:
            logger.exception("Firestore read failed: %s", booking_id)
            raise StoreUnavailableError("Booking store is unavailable") from exc
        if not snapshot.exists:
            raise BookingNotFoundError("Booking not found")
        return snapshot.to_dict() or {}

    def _list_sync(self) -> List[StoredRecord]:
        try:
            snapshots = list(self.client.collection(self.collection).stream())
        except google_exceptions.GoogleAPIError as exc:
            logger.exception("Firestore listing failed")
            raise StoreUnavailableError("Booking store is unavailable") from exc
        return [(snapshot.id, snapshot.to_dict() or {}) for snapshot in snapshots]

    def _update_sync(self, booking_id: str, patch: Dict[str, Any]) -> None:
        try:
            self._doc(booking_id).update(patch)
        except google_exceptions.NotFound as exc:
            raise BookingNotFoundError("Booking not found") from exc
        except google_exceptions.GoogleAPIError as exc:
            logger.exception("Firestore update failed: %s", booking_id)
            raise StoreUnavailableError("Booking store is unavailable") from exc

    def _delete_sync(self, booking_id: str) -> None:
        try:
            self._doc(booking_id).delete(option=self.client.write_option(exists=True))
        except google_exceptions.NotFound as exc:
            raise BookingNotFoundError("Booking not found") from exc
        except google_exceptions.GoogleAPIError as exc:
            logger.exception("Firestore delete failed: %s", booking_id)
            raise StoreUnavailableError("Booking store is unavailable") from exc

    async def create(self, booking_id: str, record: Dict[str, Any]) -> None:
        await run_blocking(self._create_sync, booking_id, record)

    async def get(self, booking_id: str) -> Dict[str, Any]:
        return await run_blocking(self._get_sync, booking_id)

    async def list_all(self) -> List[StoredRecord]:
        return await run_blocking(self._list_sync)

    async def update(self, booking_id: str, patch: Dict[str, Any]) -> None:
        await run_blocking(self._update_sync, booking_id, patch)

    async def delete(self, booking_id: str) -> None:
        await run_blocking(self._delete_sync, booking_id)


class FirestoreCatalogSource:
    """One Firestore collection per service category."""

    def __init__(self, client: Any = None):
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = firestore_clients.get_client()
        return self._client

    def _get_sync(self, category: str, service_id: str) -> Optional[ServiceDefinition]:
        try:
            snapshot = self.client.collection(category).document(service_id).get()
        except google_exceptions.GoogleAPIError as exc:
            logger.exception("Firestore catalog read failed: %s/%s", category, service_id)
            raise StoreUnavailableError("Catalog is unavailable") from exc
        if not snapshot.exists:
            return None
        return service_from_document(category, service_id, snapshot.to_dict() or {})

    def _list_sync(self, category: str) -> List[ServiceDefinition]:
        try:
            snapshots = list(self.client.collection(category).stream())
        except google_exceptions.GoogleAPIError as exc:
            logger.exception("Firestore catalog listing failed: %s", category)
            raise StoreUnavailableError("Catalog is unavailable") from exc
        return [service_from_document(category, snapshot.id, snapshot.to_dict() or {}) for snapshot in snapshots]

    async def get(self, category: str, service_id: str) -> Optional[ServiceDefinition]:
        return await run_blocking(self._get_sync, category, service_id)

    async def list_category(self, category: str) -> List[ServiceDefinition]:
        return await run_blocking(self._list_sync, category)
