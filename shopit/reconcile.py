"""
Reconciliation sweep: delete media objects no catalog row references.

The sweep takes two independent snapshots (catalog, then media store) without
locking, so a product created between the two reads can have its freshly
uploaded image counted as referenced or not depending on timing. Objects are
only ever deleted from the media store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from shopit.catalog import CatalogRepository
from shopit.errors import ShopError
from shopit.storage import MediaStoreClient, strip_query

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    scanned: int = 0
    orphans: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "scanned": self.scanned,
            "orphans": list(self.orphans),
            "deleted": list(self.deleted),
            "failed": list(self.failed),
        }


def find_orphans(catalog: CatalogRepository, media: MediaStoreClient, folder: str):
    refs = catalog.list_image_refs()
    known_urls = {strip_query(image) for image, _ in refs}
    known_ids = {public_id for _, public_id in refs if public_id}

    remote = media.list(f"{folder}/")
    orphans = [
        obj
        for obj in remote
        if strip_query(obj.remote_url) not in known_urls
        and obj.public_id not in known_ids
    ]
    return remote, orphans


def run_sweep(
    catalog: CatalogRepository,
    media: MediaStoreClient,
    folder: str = "products",
    *,
    dry_run: bool = False,
) -> SweepReport:
    remote, orphans = find_orphans(catalog, media, folder)
    report = SweepReport(scanned=len(remote))

    for orphan in orphans:
        report.orphans.append(orphan.public_id)
        if dry_run:
            logger.info("Would delete orphaned image: %s", orphan.remote_url)
            continue
        try:
            status = media.destroy(orphan.public_id)
        except ShopError as exc:
            logger.warning("Failed to delete orphaned image %s: %s", orphan.remote_url, exc)
            report.failed.append(orphan.public_id)
            continue
        if status not in ("ok", "not_found"):
            logger.warning(
                "Unexpected result deleting orphaned image %s: %s",
                orphan.remote_url,
                status,
            )
            report.failed.append(orphan.public_id)
            continue
        report.deleted.append(orphan.public_id)
        logger.info("Deleted orphaned image: %s", orphan.remote_url)

    logger.info(
        "Sweep complete: scanned %d, orphans %d, deleted %d, failed %d",
        report.scanned,
        len(report.orphans),
        len(report.deleted),
        len(report.failed),
    )
    return report
