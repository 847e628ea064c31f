import unittest
from unittest.mock import MagicMock

from shopit.catalog import InMemoryCatalogRepository
from shopit.errors import MediaDeleteError, MediaListError, ShopError
from shopit.lifecycle import ImageLifecycleManager
from shopit.reconcile import run_sweep
from shopit.storage import InMemoryMediaStoreClient, MediaObject
from shopit.tests.helpers import png_bytes

WIDGET = {"name": "Widget", "category": "tools", "new_price": 10}


class ReconciliationSweepTests(unittest.TestCase):
    def setUp(self):
        self.catalog = InMemoryCatalogRepository()
        self.media = InMemoryMediaStoreClient(base_url="https://media")
        self.manager = ImageLifecycleManager(catalog=self.catalog, media=self.media)

    def test_deletes_only_unreferenced_objects(self):
        kept = self.manager.create_with_image(png_bytes(), "kept.png", WIDGET)
        orphan = self.manager.upload_image(png_bytes(), "orphan.png")
        self.media.put("banners/hero")

        report = run_sweep(self.catalog, self.media)

        self.assertEqual(report.scanned, 2)
        self.assertEqual(report.deleted, [orphan.public_id])
        self.assertIn(kept.image_public_id, self.media.stored_objects)
        self.assertIn("banners/hero", self.media.stored_objects)

    def test_remote_set_is_subset_of_catalog_after_sweep(self):
        for name in ["a", "b"]:
            self.manager.create_with_image(png_bytes(), f"{name}.png", dict(WIDGET, name=name))
        for name in ["x", "y", "z"]:
            self.manager.upload_image(png_bytes(), f"{name}.png")

        run_sweep(self.catalog, self.media)

        catalog_urls = {image for image, _ in self.catalog.list_image_refs()}
        remote_urls = {obj.remote_url for obj in self.media.list("products/")}
        self.assertTrue(remote_urls <= catalog_urls)
        self.assertEqual(len(remote_urls), 2)

    def test_pre_uploaded_url_counts_as_reference(self):
        url = self.media.put("products/legacy_1", "png")
        self.manager.create_product(dict(WIDGET, image=url, image_public_id=None))
        report = run_sweep(self.catalog, self.media)
        self.assertEqual(report.orphans, [])

    def test_dry_run_deletes_nothing(self):
        orphan = self.manager.upload_image(png_bytes(), "orphan.png")
        report = run_sweep(self.catalog, self.media, dry_run=True)
        self.assertEqual(report.orphans, [orphan.public_id])
        self.assertEqual(report.deleted, [])
        self.assertIn(orphan.public_id, self.media.stored_objects)

    def test_individual_failures_do_not_abort(self):
        media = MagicMock()
        media.list.return_value = [
            MediaObject("https://media/products/a.png", "products/a"),
            MediaObject("https://media/products/b.png", "products/b"),
            MediaObject("https://media/products/c.png", "products/c"),
        ]
        media.destroy.side_effect = ["ok", MediaDeleteError("boom"), "not_found"]

        report = run_sweep(self.catalog, media)

        self.assertEqual(media.destroy.call_count, 3)
        self.assertEqual(report.deleted, ["products/a", "products/c"])
        self.assertEqual(report.failed, ["products/b"])

    def test_listing_failure_aborts_before_deleting(self):
        media = MagicMock()
        media.list.side_effect = MediaListError("denied")
        with self.assertRaises(ShopError):
            run_sweep(self.catalog, media)
        media.destroy.assert_not_called()


if __name__ == "__main__":
    unittest.main()
