import uuid
from datetime import datetime

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import selectinload

from app.db.models import Subtask, Task
from app.schemas.replication_schemas import AddCommunityTaskRequest, ProtoTimestamp
from app.services.task_replication_service import TaskReplicationService


def make_request(members: int = 3, **overrides) -> AddCommunityTaskRequest:
    fields = dict(
        community_task_id=str(uuid.uuid4()),
        community_id=str(uuid.uuid4()),
        member_ids=[str(uuid.uuid4()) for _ in range(members)],
        title="Read chapter 3",
        description="Before Friday",
        deadline=ProtoTimestamp(seconds=1714705200, nanos=500_000_000),
        subtasks=["Skim", "Take notes"],
    )
    fields.update(overrides)
    return AddCommunityTaskRequest(**fields)


async def count(db_session, model) -> int:
    return (await db_session.execute(select(func.count()).select_from(model))).scalar_one()


class TestProtoTimestamp:
    def test_round_trip(self):
        moment = datetime(2024, 5, 3, 3, 0, 0, 250000)

        assert ProtoTimestamp.from_datetime(moment).to_datetime() == moment

    def test_pre_epoch(self):
        moment = datetime(1969, 12, 31, 23, 59, 59, 500000)
        stamp = ProtoTimestamp.from_datetime(moment)

        assert (stamp.seconds, stamp.nanos) == (-1, 500_000_000)


class TestTaskReplicationService:
    async def test_creates_one_task_with_subtasks_per_member(self, db_session):
        request = make_request()

        result = await TaskReplicationService(db_session).add_community_task(request)

        assert result.created == 3
        assert result.duplicate is False
        tasks = (
            await db_session.execute(select(Task).options(selectinload(Task.subtasks)))
        ).scalars().all()
        assert sorted(str(task.user_id) for task in tasks) == sorted(request.member_ids)
        for task in tasks:
            assert str(task.community_task_id) == request.community_task_id
            assert task.deadline == datetime(2024, 5, 3, 3, 0, 0, 500000)
            assert sorted(subtask.title for subtask in task.subtasks) == ["Skim", "Take notes"]

    async def test_replayed_request_inserts_nothing(self, db_session):
        request = make_request()
        service = TaskReplicationService(db_session)

        await service.add_community_task(request)
        replay = await service.add_community_task(request)

        assert replay.duplicate is True
        assert replay.created == 0
        assert await count(db_session, Task) == 3
        assert await count(db_session, Subtask) == 6

    async def test_invalid_member_id_inserts_nothing(self, db_session):
        request = make_request(member_ids=[str(uuid.uuid4()), "not-a-uuid"])

        with pytest.raises(ValueError, match="INVALID_ARGUMENT"):
            await TaskReplicationService(db_session).add_community_task(request)

        assert await count(db_session, Task) == 0

    async def test_remove_deletes_replicas_and_subtasks(self, db_session):
        request = make_request()
        other = make_request(members=1)
        service = TaskReplicationService(db_session)
        await service.add_community_task(request)
        await service.add_community_task(other)

        removed = await service.remove_community_task(request.community_task_id)

        assert removed == 3
        assert await count(db_session, Task) == 1
        assert await count(db_session, Subtask) == 2

    async def test_remove_unknown_id_is_a_no_op(self, db_session):
        assert await TaskReplicationService(db_session).remove_community_task(
            str(uuid.uuid4())
        ) == 0


class TestReplicationEndpoint:
    async def test_create_then_replay(self, api_client, db_session):
        request = make_request()
        payload = request.model_dump(mode="json")

        async with api_client() as client:
            created = await client.post("/internal/community-tasks", json=payload)
            replayed = await client.post("/internal/community-tasks", json=payload)

        assert created.status_code == 201
        assert created.json()["data"] == {"created": 3, "duplicate": False}
        assert replayed.status_code == 200
        assert replayed.json()["data"] == {"created": 0, "duplicate": True}
        assert await count(db_session, Task) == 3

    async def test_invalid_argument_is_structured(self, api_client):
        payload = make_request(community_id="nope").model_dump(mode="json")

        async with api_client() as client:
            response = await client.post("/internal/community-tasks", json=payload)

        assert response.status_code == 400
        body = response.json()
        assert body["meta"]["error_code"] == "INVALID_ARGUMENT"
        assert "community_id" in body["message"]

    async def test_remove(self, api_client, db_session):
        request = make_request(members=2)
        await TaskReplicationService(db_session).add_community_task(request)

        async with api_client() as client:
            response = await client.delete(
                f"/internal/community-tasks/{request.community_task_id}"
            )

        assert response.status_code == 200
        assert response.json()["data"] == {"removed": 2}
        assert await count(db_session, Task) == 0
