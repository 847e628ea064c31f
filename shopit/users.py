"""
User persistence for signup and login.
"""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from shopit.db import UserRow
from shopit.errors import AuthError, RepositoryError


@dataclass
class UserRecord:
    name: str
    email: str
    password: str
    cart_data: list[int]
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    date: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class UserRepository(Protocol):
    def create(self, user: UserRecord) -> UserRecord:
        ...

    def find_by_email(self, email: str) -> Optional[UserRecord]:
        ...


class InMemoryUserRepository:
    def __init__(self):
        self.users: Dict[str, UserRecord] = {}

    def create(self, user: UserRecord) -> UserRecord:
        if self.find_by_email(user.email):
            raise AuthError("User already exists")
        self.users[user.id] = copy.deepcopy(user)
        return user

    def find_by_email(self, email: str) -> Optional[UserRecord]:
        for user in self.users.values():
            if user.email == email:
                return copy.deepcopy(user)
        return None

    def reset(self) -> None:
        self.users.clear()


class SqlUserRepository:
    def __init__(self, session_factory: sessionmaker):
        self.Session = session_factory

    @staticmethod
    def _to_record(row: UserRow) -> UserRecord:
        return UserRecord(
            id=row.id,
            name=row.name,
            email=row.email,
            password=row.password,
            cart_data=list(row.cart_data or []),
            date=row.date,
        )

    def create(self, user: UserRecord) -> UserRecord:
        try:
            with self.Session() as session:
                session.add(
                    UserRow(
                        id=user.id,
                        name=user.name,
                        email=user.email,
                        password=user.password,
                        cart_data=list(user.cart_data),
                        date=user.date,
                    )
                )
                session.commit()
        except IntegrityError as exc:
            # Unique email index lost a race with a concurrent signup.
            raise AuthError("User already exists") from exc
        except SQLAlchemyError as exc:
            raise RepositoryError(
                "Error saving user.", details={"error": str(exc)}
            ) from exc
        return user

    def find_by_email(self, email: str) -> Optional[UserRecord]:
        try:
            with self.Session() as session:
                row = session.execute(
                    select(UserRow).where(UserRow.email == email)
                ).scalar_one_or_none()
                return self._to_record(row) if row else None
        except SQLAlchemyError as exc:
            raise RepositoryError(
                "Error reading user.", details={"error": str(exc)}
            ) from exc
