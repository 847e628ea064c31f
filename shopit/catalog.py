"""
Catalog repository: persistence for Product records.

Ids come from a high-water mark: one more than the largest id ever assigned
(``max(id) + 1`` while nothing at the top was deleted), so an id is never
handed out twice. The SQL implementation keeps the mark in a counter row
bumped in the same transaction as the insert, and retries with a fresh id
when another writer got there first.
"""

from __future__ import annotations

import copy
import logging
import threading
from dataclasses import dataclass, field, fields as dataclass_fields
from datetime import datetime, timezone
from typing import Iterable, Optional, Protocol

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from shopit.db import CounterRow, ProductRow
from shopit.errors import InvalidStateError, RepositoryError, ValidationError

logger = logging.getLogger(__name__)

MAX_INSERT_ATTEMPTS = 5
PRODUCT_ID_COUNTER = "product_id"

# Fields that may be changed by a shallow merge. The image version only
# moves through swap_image.
UPDATABLE_FIELDS = frozenset(
    {
        "name",
        "category",
        "image",
        "image_public_id",
        "new_price",
        "old_price",
        "available",
        "features",
    }
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Product:
    name: str
    category: str
    new_price: float
    id: Optional[int] = None
    image: Optional[str] = None
    image_public_id: Optional[str] = None
    image_version: int = 1
    old_price: float = 0
    available: bool = True
    features: list[str] = field(default_factory=list)
    date: datetime = field(default_factory=_utcnow)

    def versioned_image_url(self) -> Optional[str]:
        """Return the image URL with the cache-busting version appended."""
        if not self.image:
            return None
        separator = "&" if "?" in self.image else "?"
        return f"{self.image}{separator}v={self.image_version}"

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "image": self.image,
            "imageVersion": self.image_version,
            "category": self.category,
            "new_price": self.new_price,
            "old_price": self.old_price,
            "available": self.available,
            "features": list(self.features),
            "date": self.date.isoformat() if self.date else None,
        }


def check_update_fields(changes: dict) -> None:
    unknown = sorted(set(changes) - UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(
            "Unknown product fields.", details={"fields": unknown}
        )


class CatalogRepository(Protocol):
    """Interface for catalog persistence."""

    def next_id(self) -> int:
        ...

    def insert(self, product: Product) -> Product:
        ...

    def find_by_id(self, product_id: int) -> Optional[Product]:
        ...

    def delete_by_id(self, product_id: int) -> bool:
        ...

    def find_all(self) -> list[Product]:
        ...

    def find_page(self, skip: int, limit: int) -> list[Product]:
        ...

    def update(self, product_id: int, changes: dict) -> Optional[Product]:
        ...

    def swap_image(
        self,
        product_id: int,
        expected_image: Optional[str],
        image: str,
        image_public_id: str,
    ) -> Optional[Product]:
        """
        Point a product at a new image and bump its version, but only while
        the product still references ``expected_image``.

        Returns None when the product is gone; raises InvalidStateError when
        its image changed since the caller read it.
        """
        ...

    def list_image_refs(self) -> list[tuple[str, Optional[str]]]:
        ...


def _image_conflict(product_id: int) -> InvalidStateError:
    return InvalidStateError(
        "Product image was changed by another request.",
        details={"id": product_id},
    )


class InMemoryCatalogRepository:
    """Simple in-memory catalog for development and tests."""

    def __init__(self, products: Iterable[Product] = ()):
        self.products: dict[int, Product] = {}
        self.high_water = 0
        self._lock = threading.Lock()
        for product in products:
            self.insert(product)

    def next_id(self) -> int:
        return max(self.high_water, max(self.products, default=0)) + 1

    def insert(self, product: Product) -> Product:
        with self._lock:
            record = copy.deepcopy(product)
            if record.id is None:
                record.id = self.next_id()
            elif record.id in self.products:
                raise RepositoryError(
                    f"Product with ID {record.id} already exists."
                )
            self.products[record.id] = record
            self.high_water = max(self.high_water, record.id)
            return copy.deepcopy(record)

    def find_by_id(self, product_id: int) -> Optional[Product]:
        product = self.products.get(product_id)
        return copy.deepcopy(product) if product else None

    def delete_by_id(self, product_id: int) -> bool:
        with self._lock:
            return self.products.pop(product_id, None) is not None

    def find_all(self) -> list[Product]:
        return [copy.deepcopy(self.products[key]) for key in sorted(self.products)]

    def find_page(self, skip: int, limit: int) -> list[Product]:
        return self.find_all()[skip : skip + limit]

    def update(self, product_id: int, changes: dict) -> Optional[Product]:
        check_update_fields(changes)
        with self._lock:
            product = self.products.get(product_id)
            if not product:
                return None
            for key, value in changes.items():
                setattr(product, key, copy.deepcopy(value))
            return copy.deepcopy(product)

    def swap_image(
        self,
        product_id: int,
        expected_image: Optional[str],
        image: str,
        image_public_id: str,
    ) -> Optional[Product]:
        with self._lock:
            product = self.products.get(product_id)
            if not product:
                return None
            if product.image != expected_image:
                raise _image_conflict(product_id)
            product.image = image
            product.image_public_id = image_public_id
            product.image_version += 1
            return copy.deepcopy(product)

    def list_image_refs(self) -> list[tuple[str, Optional[str]]]:
        return [
            (product.image, product.image_public_id)
            for product in self.products.values()
            if product.image
        ]

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.products.clear()
        self.high_water = 0


class SqlCatalogRepository:
    """
    SQLAlchemy-backed catalog. Accepts any session factory (Postgres in
    production, SQLite in tests).
    """

    def __init__(self, session_factory: sessionmaker):
        self.Session = session_factory

    @staticmethod
    def _to_product(row: ProductRow) -> Product:
        return Product(
            id=row.id,
            name=row.name,
            category=row.category,
            image=row.image,
            image_public_id=row.image_public_id,
            image_version=row.image_version,
            new_price=row.new_price,
            old_price=row.old_price,
            available=row.available,
            features=list(row.features or []),
            date=row.date,
        )

    @staticmethod
    def _to_row(product: Product, product_id: int) -> ProductRow:
        values = {
            f.name: getattr(product, f.name) for f in dataclass_fields(Product)
        }
        values["id"] = product_id
        values["features"] = list(product.features)
        return ProductRow(**values)

    @staticmethod
    def _high_water(
        session: Session, *, for_update: bool = False
    ) -> tuple[Optional[CounterRow], int]:
        counter = session.get(
            CounterRow, PRODUCT_ID_COUNTER, with_for_update=for_update
        )
        current = session.execute(select(func.max(ProductRow.id))).scalar() or 0
        return counter, max(counter.value if counter else 0, current)

    def _claim_id(self, session: Session, explicit_id: Optional[int]) -> int:
        counter, high_water = self._high_water(session, for_update=True)
        product_id = explicit_id if explicit_id is not None else high_water + 1
        if counter is None:
            counter = CounterRow(name=PRODUCT_ID_COUNTER, value=0)
            session.add(counter)
        counter.value = max(high_water, product_id)
        return product_id

    def next_id(self) -> int:
        try:
            with self.Session() as session:
                _counter, high_water = self._high_water(session)
        except SQLAlchemyError as exc:
            raise RepositoryError(
                "Error reading catalog.", details={"error": str(exc)}
            ) from exc
        return high_water + 1

    def insert(self, product: Product) -> Product:
        attempts = 1 if product.id is not None else MAX_INSERT_ATTEMPTS
        last_error: Optional[Exception] = None
        for attempt in range(1, attempts + 1):
            product_id = product.id
            try:
                with self.Session() as session:
                    product_id = self._claim_id(session, product.id)
                    row = self._to_row(product, product_id)
                    session.add(row)
                    session.commit()
                    session.refresh(row)
                    return self._to_product(row)
            except IntegrityError as exc:
                if product.id is not None:
                    raise RepositoryError(
                        f"Product with ID {product.id} already exists."
                    ) from exc
                logger.warning(
                    "Product id %s already taken (attempt %d/%d)",
                    product_id,
                    attempt,
                    attempts,
                )
                last_error = exc
            except SQLAlchemyError as exc:
                raise RepositoryError(
                    "Error saving product.", details={"error": str(exc)}
                ) from exc
        raise RepositoryError(
            "Could not assign a product ID.", details={"error": str(last_error)}
        ) from last_error

    def find_by_id(self, product_id: int) -> Optional[Product]:
        try:
            with self.Session() as session:
                row = session.get(ProductRow, product_id)
                return self._to_product(row) if row else None
        except SQLAlchemyError as exc:
            raise RepositoryError(
                "Error reading product.", details={"error": str(exc)}
            ) from exc

    def delete_by_id(self, product_id: int) -> bool:
        try:
            with self.Session() as session:
                row = session.get(ProductRow, product_id)
                if not row:
                    return False
                session.delete(row)
                session.commit()
                return True
        except SQLAlchemyError as exc:
            raise RepositoryError(
                "Error removing product.", details={"error": str(exc)}
            ) from exc

    def find_all(self) -> list[Product]:
        return self._select(None, None)

    def find_page(self, skip: int, limit: int) -> list[Product]:
        return self._select(skip, limit)

    def _select(self, skip: Optional[int], limit: Optional[int]) -> list[Product]:
        stmt = select(ProductRow).order_by(ProductRow.id.asc())
        if skip:
            stmt = stmt.offset(skip)
        if limit is not None:
            stmt = stmt.limit(limit)
        try:
            with self.Session() as session:
                rows = session.execute(stmt).scalars().all()
                return [self._to_product(row) for row in rows]
        except SQLAlchemyError as exc:
            raise RepositoryError(
                "Error fetching products.", details={"error": str(exc)}
            ) from exc

    def update(self, product_id: int, changes: dict) -> Optional[Product]:
        check_update_fields(changes)
        try:
            with self.Session() as session:
                row = session.get(ProductRow, product_id)
                if not row:
                    return None
                for key, value in changes.items():
                    setattr(row, key, list(value) if key == "features" else value)
                session.commit()
                session.refresh(row)
                return self._to_product(row)
        except SQLAlchemyError as exc:
            raise RepositoryError(
                "Error updating product.", details={"error": str(exc)}
            ) from exc

    def swap_image(
        self,
        product_id: int,
        expected_image: Optional[str],
        image: str,
        image_public_id: str,
    ) -> Optional[Product]:
        current_image = (
            ProductRow.image.is_(None)
            if expected_image is None
            else ProductRow.image == expected_image
        )
        stmt = (
            update(ProductRow)
            .where(ProductRow.id == product_id, current_image)
            .values(
                image=image,
                image_public_id=image_public_id,
                image_version=ProductRow.image_version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            with self.Session() as session:
                swapped = session.execute(stmt).rowcount
                session.commit()
                row = session.get(ProductRow, product_id)
                if not row:
                    return None
                if not swapped:
                    raise _image_conflict(product_id)
                return self._to_product(row)
        except SQLAlchemyError as exc:
            raise RepositoryError(
                "Error updating product image.", details={"error": str(exc)}
            ) from exc

    def list_image_refs(self) -> list[tuple[str, Optional[str]]]:
        stmt = select(ProductRow.image, ProductRow.image_public_id).where(
            ProductRow.image.is_not(None)
        )
        try:
            with self.Session() as session:
                return [(image, public_id) for image, public_id in session.execute(stmt)]
        except SQLAlchemyError as exc:
            raise RepositoryError(
                "Error reading catalog images.", details={"error": str(exc)}
            ) from exc
