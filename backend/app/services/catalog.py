import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

from app.models import ServiceCategory, ServiceDefinition
from app.services.errors import InvalidSelectionError, ServiceNotFoundError, StoreUnavailableError
from app.services.pricing import parse_amount
from app.services.store_calls import run_blocking

logger = logging.getLogger(__name__)

# Probe order when a service id is resolved without its category.
CATEGORY_PRIORITY: tuple[ServiceCategory, ...] = ("plumbing", "cleaning", "repairing", "painting")

SEED_SERVICES: List[Dict[str, Any]] = [
    {"id": "qEgiKTovsn6OwWMbhtV3", "category": "cleaning", "name": "Full Home Cleaning", "amount": "100.00", "image": "cleaning1.png"},
    {"id": "xMzhyDPCzuq7CnexMl74", "category": "cleaning", "name": "Kitchen Deep Cleaning", "amount": "75.00", "image": "cleaning2.png"},
    {"id": "nkVtiuVIondPpMuiUK8U", "category": "cleaning", "name": "Bathroom Cleaning", "amount": "45.50", "image": "cleaning3.png"},
    {"id": "ZVvmlqUcKZlpi85IeC33", "category": "cleaning", "name": "Sofa & Carpet Shampoo", "amount": "60.00", "image": "cleaning4.png"},
    {"id": "4oTtspwW2lHmok9krCoW", "category": "repairing", "name": "Appliance Repair", "amount": "55.00", "image": "repairing1.png"},
    {"id": "R1D9hJweATK1ltjzrqbc", "category": "repairing", "name": "Furniture Repair", "amount": "40.00", "image": "repairing2.png"},
    {"id": "37IiCBqNddOZGRiNI09J", "category": "painting", "name": "Interior Wall Painting", "amount": "250.00", "image": "painting1.png"},
    {"id": "VeecBj9llRRgnGCTJsX3", "category": "painting", "name": "Exterior Painting", "amount": "420.00", "image": "painting2.png"},
    {"id": "XdxL8pbYHirCUuxC4Ye3", "category": "plumbing", "name": "Leak Repair", "amount": "35.00", "image": "plumbing1.png"},
    {"id": "GuK5yrUOKnqpBhS8Pw3Z", "category": "plumbing", "name": "Pipe Installation", "amount": "89.99", "image": "plumbing2.png"},
]


def service_from_document(category: str, service_id: str, data: Mapping[str, Any]) -> ServiceDefinition:
    return ServiceDefinition(
        id=service_id,
        category=category,  # type: ignore[arg-type]
        name=str(data.get("name") or service_id),
        amount=parse_amount(data.get("amount")),
        image=data.get("image") or None,
    )


class CatalogSource(Protocol):
    async def get(self, category: str, service_id: str) -> Optional[ServiceDefinition]:
        ...

    async def list_category(self, category: str) -> List[ServiceDefinition]:
        ...


@dataclass
class SqliteCatalogSource:
    db_path: str
    seed: bool = True

    def __post_init__(self) -> None:
        self._lock = Lock()
        path = Path(self.db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = str(path)
        self._init_db()
        if self.seed:
            self._seed_if_needed()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._lock:
            with self._connect() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS catalog_services (
                        id TEXT NOT NULL,
                        category TEXT NOT NULL,
                        name TEXT NOT NULL,
                        amount TEXT NOT NULL,
                        image TEXT,
                        PRIMARY KEY (category, id)
                    )
                    """
                )
                conn.commit()

    def _seed_if_needed(self) -> None:
        with self._lock:
            with self._connect() as conn:
                conn.executemany(
                    """
                    INSERT OR IGNORE INTO catalog_services (id, category, name, amount, image)
                    VALUES (:id, :category, :name, :amount, :image)
                    """,
                    SEED_SERVICES,
                )
                conn.commit()

    def add_service(self, category: str, service_id: str, name: str, amount: str, image: Optional[str] = None) -> None:
        with self._lock:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO catalog_services (id, category, name, amount, image)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(category, id) DO UPDATE SET
                        name = excluded.name,
                        amount = excluded.amount,
                        image = excluded.image
                    """,
                    (service_id, category, name, amount, image),
                )
                conn.commit()

    def _get_sync(self, category: str, service_id: str) -> Optional[ServiceDefinition]:
        try:
            with self._lock:
                with self._connect() as conn:
                    row = conn.execute(
                        "SELECT * FROM catalog_services WHERE category = ? AND id = ?",
                        (category, service_id),
                    ).fetchone()
        except sqlite3.Error as exc:
            logger.exception("Catalog read failed: %s/%s", category, service_id)
            raise StoreUnavailableError("Catalog is unavailable") from exc
        if not row:
            return None
        return service_from_document(category, service_id, dict(row))

    def _list_sync(self, category: str) -> List[ServiceDefinition]:
        try:
            with self._lock:
                with self._connect() as conn:
                    rows = conn.execute(
                        "SELECT * FROM catalog_services WHERE category = ? ORDER BY name",
                        (category,),
                    ).fetchall()
        except sqlite3.Error as exc:
            logger.exception("Catalog listing failed: %s", category)
            raise StoreUnavailableError("Catalog is unavailable") from exc
        return [service_from_document(category, row["id"], dict(row)) for row in rows]

    async def get(self, category: str, service_id: str) -> Optional[ServiceDefinition]:
        return await run_blocking(self._get_sync, category, service_id)

    async def list_category(self, category: str) -> List[ServiceDefinition]:
        return await run_blocking(self._list_sync, category)


class ServiceCatalog:
    """Resolves a bare service id across the fixed category stores."""

    def __init__(self, source: CatalogSource, categories: Sequence[str] = CATEGORY_PRIORITY) -> None:
        self.source = source
        self.categories = tuple(categories)

    async def resolve(self, service_id: str) -> ServiceDefinition:
        normalized = (service_id or "").strip()
        if not normalized:
            raise ServiceNotFoundError("Service not found")
        for category in self.categories:
            found = await self.source.get(category, normalized)
            if found is not None:
                return found
        raise ServiceNotFoundError(f"Service not found: {normalized}")

    async def list_category(self, category: str) -> List[ServiceDefinition]:
        normalized = (category or "").strip().lower()
        if normalized not in self.categories:
            raise InvalidSelectionError(f"Invalid category. Allowed: {', '.join(self.categories)}")
        return await self.source.list_category(normalized)
