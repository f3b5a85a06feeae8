from __future__ import annotations

import asyncio
import uuid
from abc import ABC, abstractmethod
from dataclasses import replace

from auth.models import ExternalIdentity, Identity


class UserDirectory(ABC):
    @abstractmethod
    async def find_by_external_identity(
        self, provider: str, provider_user_id: str
    ) -> Identity | None:
        raise NotImplementedError

    @abstractmethod
    async def find_by_id(self, user_id: str) -> Identity | None:
        raise NotImplementedError

    @abstractmethod
    async def upsert(self, candidate: ExternalIdentity) -> Identity:
        raise NotImplementedError


class MemoryUserDirectory(UserDirectory):
    """In-process user records, indexed by id and by (provider, subject)."""

    def __init__(self) -> None:
        self._users: dict[str, Identity] = {}
        self._by_external: dict[tuple[str, str], str] = {}
        self._write_lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._users)

    async def find_by_external_identity(
        self, provider: str, provider_user_id: str
    ) -> Identity | None:
        user_id = self._by_external.get((provider, provider_user_id))
        if user_id is None:
            return None
        return await self.find_by_id(user_id)

    async def find_by_id(self, user_id: str) -> Identity | None:
        user = self._users.get(user_id)
        return replace(user) if user is not None else None

    async def upsert(self, candidate: ExternalIdentity) -> Identity:
        key = (candidate.provider, candidate.provider_user_id)
        async with self._write_lock:
            user_id = self._by_external.get(key)
            if user_id is not None:
                user = replace(
                    self._users[user_id],
                    email=candidate.email,
                    name=candidate.name,
                    picture=candidate.picture,
                )
            else:
                user = Identity(
                    id=str(uuid.uuid4()),
                    email=candidate.email,
                    name=candidate.name,
                    picture=candidate.picture,
                    provider=candidate.provider,
                    provider_user_id=candidate.provider_user_id,
                )
                self._by_external[key] = user.id
            self._users[user.id] = user
        return replace(user)
