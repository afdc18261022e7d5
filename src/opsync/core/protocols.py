"""
Structural contracts between feature modules and opsync.

Feature modules (team, user, organization, goal) supply repositories and
use cases; opsync only depends on their shape.

Architecture:
    ::

        protocols.py
        ├── Repository   - find_by_id / save / delete → Result[T, str]
        └── UseCase      - execute(params) → Result[T, E]

    Consumers:
        repository.py (InMemoryRepository), execution/operation.py via
        use_case_operation()

Guardrails:
    ❌ DON'T: Raise from a repository for an expected failure
    ✅ DO: Return Err("...") and let the controller classify it

Tags:
    protocol, repository, use-case, opsync, contracts
"""

from __future__ import annotations

from typing import Any, Protocol, TypeVar, runtime_checkable

from opsync.core.result import Result


T = TypeVar("T")
P = TypeVar("P", contravariant=True)


@runtime_checkable
class Repository(Protocol[T]):
    """Storage contract consumed uniformly regardless of backing store."""

    async def find_by_id(self, entity_id: str) -> Result[T, str]:
        ...

    async def save(self, entity: T) -> Result[T, str]:
        ...

    async def delete(self, entity_id: str) -> Result[None, str]:
        ...


@runtime_checkable
class UseCase(Protocol[P]):
    """Capability interface: any backend behind one ``execute`` call."""

    async def execute(self, params: P) -> Result[Any, Any]:
        ...


__all__ = ["Repository", "UseCase"]
