"""In-memory repository and use-case adapters.

Provides :class:`InMemoryRepository`, a dict-backed implementation of the
:class:`~opsync.core.protocols.Repository` contract, and
:func:`use_case_operation`, which turns any
:class:`~opsync.core.protocols.UseCase` into an operation function for the
controllers.

Usage:
    >>> teams = InMemoryRepository[dict](name="team")
    >>> await teams.save({"id": "7", "name": "Sales"})
    Ok({'id': '7', 'name': 'Sales'})
    >>> await teams.find_by_id("missing")
    Err('team missing not found')

Tags:
    repository, in-memory, use-case, opsync
"""

from __future__ import annotations

import copy
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from opsync.core.protocols import UseCase
from opsync.core.result import Err, Ok, Result
from opsync.core.cache.synchronizer import default_id_of


T = TypeVar("T")
P = TypeVar("P")


class InMemoryRepository(Generic[T]):
    """Dict-backed repository returning ``Result[T, str]``.

    Stored entities are copied on the way in and out so callers cannot
    mutate repository state by accident.
    """

    def __init__(self, *, id_of: Callable[[T], Any] = default_id_of, name: str = "entity") -> None:
        self._id_of = id_of
        self._name = name
        self._rows: dict[str, T] = {}

    async def find_by_id(self, entity_id: str) -> Result[T, str]:
        row = self._rows.get(str(entity_id))
        if row is None:
            return Err(f"{self._name} {entity_id} not found")
        return Ok(copy.deepcopy(row))

    async def save(self, entity: T) -> Result[T, str]:
        try:
            entity_id = self._id_of(entity)
        except (KeyError, AttributeError):
            entity_id = None
        if entity_id is None or entity_id == "":
            return Err(f"{self._name} is invalid: missing id")
        self._rows[str(entity_id)] = copy.deepcopy(entity)
        return Ok(copy.deepcopy(entity))

    async def delete(self, entity_id: str) -> Result[None, str]:
        if self._rows.pop(str(entity_id), None) is None:
            return Err(f"{self._name} {entity_id} not found")
        return Ok(None)

    def __len__(self) -> int:
        return len(self._rows)


def use_case_operation(use_case: UseCase[P]) -> Callable[..., Any]:
    """Adapt a use case to the operation-function signature.

    The use case does not see progress reporting; the controller still shows
    indeterminate progress while it runs.
    """

    async def operation(params: P, report_progress: Callable[..., None]) -> Result[Any, Any]:
        return await use_case.execute(params)

    operation.__name__ = type(use_case).__name__
    return operation


__all__ = ["InMemoryRepository", "use_case_operation"]
