"""Tests for the in-memory repository and use-case adapter."""

from dataclasses import dataclass

import pytest

from opsync.core.errors import ErrorKind
from opsync.core.protocols import Repository, UseCase
from opsync.core.repository import InMemoryRepository, use_case_operation
from opsync.core.result import Err, Ok
from opsync.execution.operation import OperationController


@dataclass
class Goal:
    id: str
    title: str


class TestInMemoryRepository:
    def test_satisfies_protocol(self):
        assert isinstance(InMemoryRepository(), Repository)

    @pytest.mark.asyncio
    async def test_save_and_find(self):
        teams = InMemoryRepository[dict](name="team")
        assert await teams.save({"id": "7", "name": "Sales"}) == Ok({"id": "7", "name": "Sales"})
        assert await teams.find_by_id("7") == Ok({"id": "7", "name": "Sales"})
        assert len(teams) == 1

    @pytest.mark.asyncio
    async def test_missing_entity(self):
        teams = InMemoryRepository[dict](name="team")
        assert await teams.find_by_id("8") == Err("team 8 not found")
        assert await teams.delete("8") == Err("team 8 not found")

    @pytest.mark.asyncio
    async def test_missing_id_rejected(self):
        goals = InMemoryRepository[Goal](name="goal")
        assert await goals.save(Goal("", "Q4")) == Err("goal is invalid: missing id")

    @pytest.mark.asyncio
    async def test_mapping_without_id_rejected(self):
        teams = InMemoryRepository[dict](name="team")
        assert await teams.save({"name": "Sales"}) == Err("team is invalid: missing id")
        assert len(teams) == 0

    @pytest.mark.asyncio
    async def test_object_without_id_rejected(self):
        class Draft:
            title = "Q4"

        goals = InMemoryRepository[Draft](name="goal")
        assert await goals.save(Draft()) == Err("goal is invalid: missing id")

    @pytest.mark.asyncio
    async def test_copies_isolate_state(self):
        goals = InMemoryRepository[Goal](name="goal")
        goal = Goal("1", "Q4")
        await goals.save(goal)
        goal.title = "changed"
        found = (await goals.find_by_id("1")).unwrap()
        assert found.title == "Q4"
        found.title = "also changed"
        assert (await goals.find_by_id("1")).unwrap().title == "Q4"

    @pytest.mark.asyncio
    async def test_delete(self):
        goals = InMemoryRepository[Goal]()
        await goals.save(Goal("1", "Q4"))
        assert await goals.delete("1") == Ok(None)
        assert len(goals) == 0


class GetOrganization:
    def __init__(self, repository):
        self.repository = repository

    async def execute(self, organization_id):
        return await self.repository.find_by_id(organization_id)


class TestUseCaseOperation:
    def test_satisfies_protocol(self):
        assert isinstance(GetOrganization(InMemoryRepository()), UseCase)

    @pytest.mark.asyncio
    async def test_controller_runs_use_case(self):
        organizations = InMemoryRepository[dict](name="organization")
        await organizations.save({"id": "1", "name": "Pling"})
        operation = use_case_operation(GetOrganization(organizations))
        assert operation.__name__ == "GetOrganization"

        controller = OperationController(operation)
        await controller.execute("1")
        assert controller.data == {"id": "1", "name": "Pling"}

        await controller.execute("2")
        assert controller.error.code is ErrorKind.NOT_FOUND
        assert controller.error.context.operation == "GetOrganization"
