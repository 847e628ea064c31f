import unittest
from unittest.mock import MagicMock

from shopit.catalog import InMemoryCatalogRepository
from shopit.errors import (
    InvalidStateError,
    MediaDeleteError,
    NotFoundError,
    RepositoryError,
    UploadError,
    ValidationError,
)
from shopit.lifecycle import ImageLifecycleManager
from shopit.storage import InMemoryMediaStoreClient
from shopit.tests.helpers import png_bytes

WIDGET = {"name": "Widget", "category": "tools", "new_price": 10}


class ImageLifecycleManagerTests(unittest.TestCase):
    def setUp(self):
        self.catalog = InMemoryCatalogRepository()
        self.media = InMemoryMediaStoreClient(base_url="https://media")
        self.manager = ImageLifecycleManager(catalog=self.catalog, media=self.media)

    def _create_with_image(self, name="Widget"):
        return self.manager.create_with_image(
            png_bytes(), f"{name.lower()}.png", dict(WIDGET, name=name)
        )

    def test_create_with_image_stores_url_and_public_id(self):
        product = self._create_with_image()
        self.assertEqual(product.id, 1)
        self.assertIn(product.image_public_id, self.media.stored_objects)
        url, _data = self.media.stored_objects[product.image_public_id]
        self.assertEqual(product.image, url)

    def test_failed_upload_creates_no_row(self):
        with self.assertRaises(UploadError):
            self.manager.create_with_image(b"junk", "w.png", WIDGET)
        self.assertEqual(self.catalog.find_all(), [])

    def test_failed_insert_leaves_orphan_for_sweep(self):
        self.catalog.insert = MagicMock(side_effect=RepositoryError("down"))
        with self.assertRaises(RepositoryError):
            self._create_with_image()
        self.assertEqual(len(self.media.stored_objects), 1)

    def test_create_with_pre_uploaded_url_is_trusted(self):
        product = self.manager.create_product(
            dict(WIDGET, image="https://media/products/widget_123.png")
        )
        self.assertEqual(product.image, "https://media/products/widget_123.png")
        self.assertEqual(product.image_public_id, "products/widget_123")
        self.assertEqual(self.media.stored_objects, {})

    def test_create_ignores_client_public_id(self):
        victim = self._create_with_image("Victim")
        product = self.manager.create_product(
            dict(
                WIDGET,
                image="https://media/products/widget_123.png",
                image_public_id=victim.image_public_id,
            )
        )
        self.assertEqual(product.image_public_id, "products/widget_123")
        self.manager.delete_product(product.id)
        self.assertIn(victim.image_public_id, self.media.stored_objects)

    def test_create_rejects_image_owned_by_another_product(self):
        victim = self._create_with_image("Victim")
        with self.assertRaises(ValidationError):
            self.manager.create_product(dict(WIDGET, image=f"{victim.image}?v=1"))
        self.assertEqual(len(self.catalog.find_all()), 1)

    def test_create_rejects_url_without_media_path(self):
        with self.assertRaises(ValidationError):
            self.manager.create_product(dict(WIDGET, image="https://media/"))

    def test_create_requires_fields(self):
        with self.assertRaises(ValidationError):
            self.manager.create_product({"name": "Widget"})

    def test_serial_creates_have_increasing_ids(self):
        ids = [self.manager.create_product(dict(WIDGET, name=str(i))).id for i in range(4)]
        self.assertEqual(ids, sorted(ids))
        self.assertEqual(len(set(ids)), 4)

    def test_delete_removes_remote_image_then_row(self):
        product = self._create_with_image()
        self.manager.delete_product(product.id)
        self.assertEqual(self.media.stored_objects, {})
        self.assertIsNone(self.catalog.find_by_id(product.id))

    def test_delete_when_remote_image_already_gone(self):
        product = self._create_with_image()
        self.media.stored_objects.clear()
        self.manager.delete_product(product.id)
        self.assertEqual(self.media.destroy_calls, [product.image_public_id])
        self.assertIsNone(self.catalog.find_by_id(product.id))

    def test_delete_unknown_product_leaves_media_untouched(self):
        self._create_with_image()
        with self.assertRaises(NotFoundError):
            self.manager.delete_product(42)
        self.assertEqual(self.media.destroy_calls, [])
        self.assertEqual(len(self.media.stored_objects), 1)

    def test_delete_without_image_skips_media(self):
        media = MagicMock()
        manager = ImageLifecycleManager(catalog=self.catalog, media=media)
        product = manager.create_product(dict(WIDGET, image=None))
        manager.delete_product(product.id)
        media.destroy.assert_not_called()
        self.assertIsNone(self.catalog.find_by_id(product.id))

    def test_delete_derives_public_id_for_legacy_rows(self):
        url = self.media.put("products/legacy.v2", "jpg")
        product = self.manager.create_product(dict(WIDGET, image=url))
        self.catalog.update(product.id, {"image_public_id": None})
        self.manager.delete_product(product.id)
        self.assertEqual(self.media.destroy_calls, ["products/legacy.v2"])

    def test_unexpected_destroy_result_keeps_row(self):
        media = MagicMock()
        media.destroy.return_value = "error"
        manager = ImageLifecycleManager(catalog=self.catalog, media=media)
        product = manager.create_product(
            dict(WIDGET, image="https://media/products/w.png")
        )
        with self.assertRaises(MediaDeleteError):
            manager.delete_product(product.id)
        self.assertIsNotNone(self.catalog.find_by_id(product.id))

    def test_destroy_transport_failure_keeps_row(self):
        media = MagicMock()
        media.destroy.side_effect = MediaDeleteError("timeout")
        manager = ImageLifecycleManager(catalog=self.catalog, media=media)
        product = manager.create_product(
            dict(WIDGET, image="https://media/products/w.png")
        )
        with self.assertRaises(MediaDeleteError):
            manager.delete_product(product.id)
        self.assertIsNotNone(self.catalog.find_by_id(product.id))

    def test_replace_image_bumps_version_and_destroys_old(self):
        product = self._create_with_image()
        old_public_id = product.image_public_id
        updated = self.manager.replace_image(product.id, png_bytes((0, 0, 255)), "new.png")
        self.assertEqual(updated.image_version, 2)
        self.assertNotEqual(updated.image, product.image)
        self.assertNotIn(old_public_id, self.media.stored_objects)
        self.assertIn(updated.image_public_id, self.media.stored_objects)

    def test_replace_image_tolerates_failed_cleanup(self):
        product = self._create_with_image()
        self.media.destroy = MagicMock(side_effect=MediaDeleteError("down"))
        updated = self.manager.replace_image(product.id, png_bytes(), "new.png")
        self.assertEqual(updated.image_version, 2)

    def test_replace_image_conflict_keeps_current_image(self):
        product = self._create_with_image()
        current = self.manager.replace_image(product.id, png_bytes((0, 0, 255)), "second.png")
        self.catalog.find_by_id = MagicMock(return_value=product)
        with self.assertRaises(InvalidStateError):
            self.manager.replace_image(product.id, png_bytes((0, 255, 0)), "third.png")
        stored = self.catalog.products[product.id]
        self.assertEqual(stored.image, current.image)
        self.assertEqual(stored.image_version, 2)
        self.assertEqual(list(self.media.stored_objects), [current.image_public_id])

    def test_replace_image_of_product_deleted_midway(self):
        product = self._create_with_image()
        self.catalog.find_by_id = MagicMock(return_value=product)
        self.catalog.delete_by_id(product.id)
        with self.assertRaises(NotFoundError):
            self.manager.replace_image(product.id, png_bytes(), "new.png")
        self.assertEqual(list(self.media.stored_objects), [product.image_public_id])

    def test_replace_image_unknown_product(self):
        with self.assertRaises(NotFoundError):
            self.manager.replace_image(5, png_bytes(), "new.png")
        self.assertEqual(self.media.stored_objects, {})

    def test_update_product_edits_attributes_only(self):
        product = self._create_with_image()
        updated = self.manager.update_product(product.id, {"new_price": 8, "available": False})
        self.assertEqual(updated.new_price, 8)
        self.assertFalse(updated.available)
        self.assertEqual(updated.image, product.image)
        with self.assertRaises(ValidationError):
            self.manager.update_product(product.id, {"image": "https://x/y.png"})
        with self.assertRaises(NotFoundError):
            self.manager.update_product(99, {"name": "x"})

    def test_listing_appends_version_without_rewriting(self):
        product = self._create_with_image()
        self.manager.create_product(dict(WIDGET, name="No image"))
        first = self.manager.list_products()
        second = self.manager.list_products()
        self.assertEqual(first, second)
        self.assertEqual(first[0]["image"], f"{product.image}?v=1")
        self.assertIsNone(first[1]["image"])
        self.assertEqual(self.catalog.find_by_id(product.id).image, product.image)


if __name__ == "__main__":
    unittest.main()
