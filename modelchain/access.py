"""Caller identity and the anonymous trial gate."""

from __future__ import annotations

import logging
from typing import Optional, Protocol, Set

from pydantic import BaseModel

from .errors import SignupRequiredError

logger = logging.getLogger(__name__)


class Caller(BaseModel):
    """Who is running a workflow.

    ``user_id`` is set for authenticated callers. Anonymous callers are
    identified by ``identity`` (a client fingerprint or address).
    """

    user_id: Optional[str] = None
    identity: str = "anonymous"

    @property
    def is_anonymous(self) -> bool:
        return self.user_id is None


class TrialRegistry(Protocol):
    """Remembers which anonymous identities already used their free run."""

    async def has_used(self, identity: str) -> bool:
        ...

    async def mark_used(self, identity: str) -> None:
        ...


class InMemoryTrialRegistry(TrialRegistry):
    def __init__(self) -> None:
        self._used: Set[str] = set()

    async def has_used(self, identity: str) -> bool:
        return identity in self._used

    async def mark_used(self, identity: str) -> None:
        self._used.add(identity)


class TrialGate:
    """Allows each anonymous identity exactly one execution."""

    def __init__(self, registry: Optional[TrialRegistry] = None) -> None:
        self._registry = registry or InMemoryTrialRegistry()

    async def admit(self, caller: Caller) -> None:
        """Consume the caller's trial or raise ``SignupRequiredError``."""
        if not caller.is_anonymous:
            return
        if await self._registry.has_used(caller.identity):
            logger.info(f"Trial already used by {caller.identity}")
            raise SignupRequiredError()
        await self._registry.mark_used(caller.identity)
