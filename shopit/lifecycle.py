"""
Image lifecycle manager.

Coordinates the media store and the catalog so that every product's image
points at a live remote object it alone owns. The two systems cannot share a
transaction, so writes are ordered instead:

- create: upload, then insert the catalog row
- replace: upload the new image, swap it into the row (only if the row still
  holds the image that was read), then destroy the old image
- delete: destroy the remote image, then delete the row

Whatever a failure leaves behind on the media side is an orphan that the
reconciliation sweep removes later.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from shopit.catalog import CatalogRepository, Product
from shopit.errors import (
    InvalidStateError,
    MediaDeleteError,
    NotFoundError,
    RepositoryError,
    ValidationError,
)
from shopit.storage import (
    MediaStoreClient,
    UploadResult,
    derive_public_id,
    strip_query,
)

logger = logging.getLogger(__name__)

SAFE_DESTROY_STATUSES = ("ok", "not_found")

EDITABLE_FIELDS = frozenset(
    {"name", "category", "new_price", "old_price", "available", "features"}
)


@dataclass
class ImageLifecycleManager:
    catalog: CatalogRepository
    media: MediaStoreClient
    folder: str = "products"

    def upload_image(self, data: bytes, filename: str) -> UploadResult:
        result = self.media.upload(data, filename, folder=self.folder)
        logger.info("Uploaded %s as %s", filename, result.public_id)
        return result

    def create_product(self, fields: dict) -> Product:
        """
        Insert a product whose image (if any) was uploaded beforehand.

        The media identifier always comes from the URL itself; any identifier
        in ``fields`` is ignored. An image already owned by another product is
        rejected.
        """
        fields = dict(fields)
        image = fields.get("image") or None
        public_id = None
        if image:
            try:
                public_id = derive_public_id(image, self.folder)
            except InvalidStateError as exc:
                raise ValidationError(
                    "Image URL does not reference a media object.",
                    details={"image": image},
                ) from exc
            self._check_unclaimed(image, public_id)
        return self._insert(fields, image, public_id)

    def _check_unclaimed(self, image: str, public_id: str) -> None:
        bare = strip_query(image)
        for ref_image, ref_public_id in self.catalog.list_image_refs():
            if ref_public_id == public_id or strip_query(ref_image) == bare:
                raise ValidationError(
                    "Image is already used by another product.",
                    details={"image": image},
                )

    def _insert(self, fields: dict, image: Optional[str], public_id: Optional[str]) -> Product:
        fields["image"] = image
        fields["image_public_id"] = public_id
        product = self.catalog.insert(_build_product(fields))
        logger.info("Saved product %s (%s)", product.id, product.name)
        return product

    def create_with_image(self, data: bytes, filename: str, fields: dict) -> Product:
        result = self.upload_image(data, filename)
        try:
            return self._insert(dict(fields), result.remote_url, result.public_id)
        except RepositoryError:
            logger.warning(
                "Catalog insert failed after upload; %s left for cleanup",
                result.public_id,
            )
            raise

    def update_product(self, product_id: int, changes: dict) -> Product:
        unknown = sorted(set(changes) - EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(
                "These product fields cannot be edited.",
                details={"fields": unknown},
            )
        updated = self.catalog.update(product_id, changes)
        if not updated:
            raise NotFoundError("Product not found.")
        return updated

    def replace_image(self, product_id: int, data: bytes, filename: str) -> Product:
        product = self.catalog.find_by_id(product_id)
        if not product:
            raise NotFoundError("Product not found.")

        result = self.upload_image(data, filename)
        try:
            updated = self.catalog.swap_image(
                product_id, product.image, result.remote_url, result.public_id
            )
        except InvalidStateError:
            self._discard_upload(result)
            raise
        except RepositoryError:
            logger.warning(
                "Catalog update failed after upload; %s left for cleanup",
                result.public_id,
            )
            raise
        if not updated:
            self._discard_upload(result)
            raise NotFoundError("Product not found.")

        if product.image:
            self._destroy_previous(product)
        return updated

    def _destroy_previous(self, product: Product) -> None:
        public_id = self._public_id_for(product)
        try:
            status = self.media.destroy(public_id)
        except MediaDeleteError as exc:
            logger.warning("Could not delete replaced image %s: %s", public_id, exc)
            return
        if status not in SAFE_DESTROY_STATUSES:
            logger.warning(
                "Unexpected result deleting replaced image %s: %s", public_id, status
            )

    def _discard_upload(self, result: UploadResult) -> None:
        try:
            self.media.destroy(result.public_id)
        except MediaDeleteError as exc:
            logger.warning("Could not discard unused upload %s: %s", result.public_id, exc)

    def _public_id_for(self, product: Product) -> str:
        return product.image_public_id or derive_public_id(product.image, self.folder)

    def delete_product(self, product_id: int) -> None:
        product = self.catalog.find_by_id(product_id)
        if not product:
            raise NotFoundError("Product not found.")

        if product.image is not None:
            public_id = self._public_id_for(product)
            status = self.media.destroy(public_id)
            if status not in SAFE_DESTROY_STATUSES:
                logger.error(
                    "Error deleting image %s from media store: %s", public_id, status
                )
                raise MediaDeleteError(
                    "Error deleting image from media store.",
                    details={"mediaResponse": {"result": status}},
                )

        self.catalog.delete_by_id(product_id)
        logger.info("Product with ID %s removed successfully.", product_id)

    def list_products(self) -> list[dict]:
        return [present(product) for product in self.catalog.find_all()]

    def list_page(self, skip: int, limit: int) -> list[dict]:
        return [present(product) for product in self.catalog.find_page(skip, limit)]


def present(product: Product) -> dict:
    """Serialize a product for reads, with the cache-busted image URL."""
    payload = product.as_dict()
    payload["image"] = product.versioned_image_url()
    return payload


def _build_product(fields: dict) -> Product:
    name = fields.get("name")
    category = fields.get("category")
    new_price = fields.get("new_price")
    missing = [
        key
        for key, value in (
            ("name", name),
            ("category", category),
            ("new_price", new_price),
        )
        if value in (None, "")
    ]
    if missing:
        raise ValidationError(
            "Missing required product fields.", details={"fields": missing}
        )

    old_price: Optional[float] = fields.get("old_price")
    available = fields.get("available")
    return Product(
        name=name,
        category=category,
        new_price=new_price,
        image=fields.get("image"),
        image_public_id=fields.get("image_public_id"),
        old_price=old_price if old_price is not None else 0,
        available=available if available is not None else True,
        features=list(fields.get("features") or []),
    )
