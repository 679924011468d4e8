import json
import uuid

import httpx
import pytest
from sqlalchemy import func, select

from app.db.models import CommunityTask, Task
from app.schemas.community_task_schemas import CreateCommunityTaskRequest
from app.services.clients import TaskServiceClient
from app.services.community_task_service import CommunityTaskService
from app.utils.errors import NotFoundError, ReplicationError

TASK_SERVICE_URL = "http://task-service/internal"


def success_envelope(request: httpx.Request) -> httpx.Response:
    if request.method == "DELETE":
        return httpx.Response(200, json={"success": True, "data": {"removed": 0}})
    return httpx.Response(201, json={"success": True, "data": {"created": 3, "duplicate": False}})


def error_envelope(status_code: int, code: str):
    def respond(request: httpx.Request) -> httpx.Response:
        if request.method == "DELETE":
            return httpx.Response(200, json={"success": True, "data": {"removed": 0}})
        return httpx.Response(
            status_code,
            json={"success": False, "message": "boom", "meta": {"error_code": code}},
        )

    return respond


async def count(db_session, model) -> int:
    return (await db_session.execute(select(func.count()).select_from(model))).scalar_one()


@pytest.fixture
def make_service(db_session, recording_transport):
    def build(responder):
        transport = recording_transport(responder)
        client = TaskServiceClient(TASK_SERVICE_URL, client=transport.client(TASK_SERVICE_URL))
        return CommunityTaskService(db_session, client), transport

    return build


REQUEST = CreateCommunityTaskRequest(
    title="Read chapter 3",
    description="Before Friday",
    deadline="2024-05-03T10:00:00+07:00",
    subtasks=["Skim", "Take notes"],
)


class TestCreateCommunityTask:
    async def test_success_commits_canonical_task_and_sends_member_snapshot(
        self, make_service, db_session, sample_community
    ):
        service, transport = make_service(success_envelope)

        response = await service.create_community_task(sample_community.id, REQUEST)

        assert await count(db_session, CommunityTask) == 1
        assert len(transport.requests) == 1
        request = transport.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/internal/community-tasks"
        body = json.loads(request.content)
        assert body["community_task_id"] == str(response.id)
        assert body["community_id"] == str(sample_community.id)
        assert len(body["member_ids"]) == 3
        assert body["subtasks"] == ["Skim", "Take notes"]
        # 2024-05-03T03:00:00Z
        assert body["deadline"] == {"seconds": 1714705200, "nanos": 0}

    async def test_rpc_error_leaves_no_canonical_row(
        self, make_service, db_session, sample_community
    ):
        service, transport = make_service(error_envelope(500, "INTERNAL"))

        with pytest.raises(ReplicationError) as exc_info:
            await service.create_community_task(sample_community.id, REQUEST)

        assert exc_info.value.error_code == "INTERNAL"
        assert await count(db_session, CommunityTask) == 0
        assert await count(db_session, Task) == 0

    async def test_rpc_error_triggers_compensating_delete(
        self, make_service, sample_community
    ):
        service, transport = make_service(error_envelope(503, "UNAVAILABLE"))

        with pytest.raises(ReplicationError):
            await service.create_community_task(sample_community.id, REQUEST)

        methods = [request.method for request in transport.requests]
        assert methods == ["POST", "DELETE"]
        posted = json.loads(transport.requests[0].content)
        assert transport.requests[1].url.path == (
            f"/internal/community-tasks/{posted['community_task_id']}"
        )

    async def test_transport_error_is_a_replication_error(
        self, make_service, db_session, sample_community
    ):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        service, _ = make_service(refuse)

        with pytest.raises(ReplicationError) as exc_info:
            await service.create_community_task(sample_community.id, REQUEST)

        assert exc_info.value.error_code == "UNAVAILABLE"
        assert await count(db_session, CommunityTask) == 0

    async def test_failed_compensation_still_reports_the_original_error(
        self, make_service, db_session, sample_community
    ):
        def respond(request):
            return httpx.Response(
                500, json={"message": "down", "meta": {"error_code": "INTERNAL"}}
            )

        service, transport = make_service(respond)

        with pytest.raises(ReplicationError):
            await service.create_community_task(sample_community.id, REQUEST)

        assert len(transport.requests) == 2
        assert await count(db_session, CommunityTask) == 0

    async def test_unknown_community(self, make_service):
        service, transport = make_service(success_envelope)

        with pytest.raises(NotFoundError):
            await service.create_community_task(uuid.uuid4(), REQUEST)

        assert transport.requests == []


class TestCommunityTaskApi:
    async def test_create_returns_canonical_task(
        self, api_client, recording_transport, sample_community
    ):
        transport = recording_transport(success_envelope)
        task_client = TaskServiceClient(
            TASK_SERVICE_URL, client=transport.client(TASK_SERVICE_URL)
        )

        async with api_client(task_client) as client:
            response = await client.post(
                f"/api/v1/communities/{sample_community.id}/tasks",
                json={"title": "Read chapter 3", "subtasks": ["Skim"]},
            )
            listed = await client.get(f"/api/v1/communities/{sample_community.id}/tasks")

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["title"] == "Read chapter 3"
        assert data["community_id"] == str(sample_community.id)
        assert [task["id"] for task in listed.json()["data"]] == [data["id"]]
        # The fan-out call carries the request ID of the API call that triggered it
        assert transport.requests[0].headers["X-Request-ID"] == response.headers["X-Request-ID"]

    async def test_three_member_rpc_error_is_a_502_with_nothing_stored(
        self, api_client, recording_transport, sample_community, db_session
    ):
        transport = recording_transport(error_envelope(500, "INTERNAL"))
        task_client = TaskServiceClient(
            TASK_SERVICE_URL, client=transport.client(TASK_SERVICE_URL)
        )

        async with api_client(task_client) as client:
            response = await client.post(
                f"/api/v1/communities/{sample_community.id}/tasks",
                json={"title": "Read chapter 3"},
            )

        assert response.status_code == 502
        body = response.json()
        assert body["success"] is False
        assert body["meta"]["error_code"] == "INTERNAL"
        assert await count(db_session, CommunityTask) == 0
        assert await count(db_session, Task) == 0

    async def test_get_and_delete(self, api_client, db_session, sample_community):
        task = CommunityTask(community_id=sample_community.id, title="Existing")
        db_session.add(task)
        await db_session.commit()

        async with api_client() as client:
            fetched = await client.get(
                f"/api/v1/communities/{sample_community.id}/tasks/{task.id}"
            )
            deleted = await client.delete(f"/api/v1/communities/tasks/{task.id}")
            missing = await client.delete(f"/api/v1/communities/tasks/{task.id}")

        assert fetched.status_code == 200
        assert fetched.json()["data"]["title"] == "Existing"
        assert deleted.status_code == 200
        assert missing.status_code == 404
        assert missing.json()["meta"]["error_code"] == "COMMUNITY_TASK_NOT_FOUND"

    async def test_create_in_unknown_community_is_404(self, api_client, recording_transport):
        transport = recording_transport(success_envelope)
        task_client = TaskServiceClient(
            TASK_SERVICE_URL, client=transport.client(TASK_SERVICE_URL)
        )

        async with api_client(task_client) as client:
            response = await client.post(
                f"/api/v1/communities/{uuid.uuid4()}/tasks", json={"title": "x"}
            )

        assert response.status_code == 404
        assert response.json()["meta"]["error_code"] == "COMMUNITY_NOT_FOUND"
        assert transport.requests == []
