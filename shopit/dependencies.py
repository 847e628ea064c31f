"""
Dependency wiring for the FastAPI app.

Clients are constructed once per application (see ``shopit.app`` lifespan)
and handed to request handlers from ``app.state``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request
from sqlalchemy.engine import Engine

from shopit.auth import AuthService
from shopit.catalog import CatalogRepository, InMemoryCatalogRepository, SqlCatalogRepository
from shopit.config import Settings
from shopit.db import create_db_engine, create_session_factory
from shopit.lifecycle import ImageLifecycleManager
from shopit.storage import InMemoryMediaStoreClient, MediaStoreClient, S3MediaStoreClient
from shopit.users import InMemoryUserRepository, SqlUserRepository, UserRepository

logger = logging.getLogger(__name__)


@dataclass
class Resources:
    settings: Settings
    catalog: CatalogRepository
    users: UserRepository
    media: MediaStoreClient
    engine: Optional[Engine] = None

    @property
    def lifecycle(self) -> ImageLifecycleManager:
        return ImageLifecycleManager(
            catalog=self.catalog, media=self.media, folder=self.settings.media_folder
        )

    @property
    def auth(self) -> AuthService:
        return AuthService(
            users=self.users,
            jwt_secret=self.settings.jwt_secret,
            jwt_expires_seconds=self.settings.jwt_expires_seconds,
            bcrypt_rounds=self.settings.bcrypt_rounds,
            cart_size=self.settings.cart_size,
        )

    def close(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None


def in_memory_resources(settings: Settings) -> Resources:
    return Resources(
        settings=settings,
        catalog=InMemoryCatalogRepository(),
        users=InMemoryUserRepository(),
        media=InMemoryMediaStoreClient(folder=settings.media_folder),
    )


def build_resources(settings: Settings) -> Resources:
    """Construct the catalog, user and media clients described by settings."""
    if settings.use_in_memory_backends:
        logger.info("Using in-memory backends")
        return in_memory_resources(settings)

    engine = None
    if settings.database_url:
        engine = create_db_engine(settings.database_url)
        session_factory = create_session_factory(engine)
        catalog: CatalogRepository = SqlCatalogRepository(session_factory)
        users: UserRepository = SqlUserRepository(session_factory)
    else:
        logger.warning("DATABASE_URL not set; catalog is kept in memory")
        catalog = InMemoryCatalogRepository()
        users = InMemoryUserRepository()

    if settings.media_bucket:
        media: MediaStoreClient = S3MediaStoreClient(
            bucket=settings.media_bucket,
            region=settings.media_region or "",
            endpoint=settings.media_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
            public_base_url=settings.media_public_base_url or "",
            folder=settings.media_folder,
        )
    else:
        logger.warning("MEDIA_BUCKET not set; images are kept in memory")
        media = InMemoryMediaStoreClient(folder=settings.media_folder)

    return Resources(
        settings=settings, catalog=catalog, users=users, media=media, engine=engine
    )


def get_resources(request: Request) -> Resources:
    return request.app.state.resources


def get_lifecycle(request: Request) -> ImageLifecycleManager:
    return get_resources(request).lifecycle


def get_auth_service(request: Request) -> AuthService:
    return get_resources(request).auth
