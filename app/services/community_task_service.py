import uuid
from typing import List, Optional

from fastapi import Depends
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Community, CommunityTask, UserJoinCommunity
from app.db.session import get_async_session
from app.schemas.community_task_schemas import (
    CommunityTaskResponse,
    CreateCommunityTaskRequest,
)
from app.schemas.replication_schemas import AddCommunityTaskRequest, ProtoTimestamp
from app.services.clients import TaskServiceClient, get_task_service_client
from app.utils.datetime_utils import to_naive_utc
from app.utils.errors import DatabaseError, NotFoundError, ReplicationError
from app.utils.logging import get_logger

logger = get_logger()


class CommunityTaskService:
    """
    Community tasks and their fan-out to members.

    Creating a community task is a small saga: the canonical row is written inside an
    open transaction, the task service is asked to create a personal copy per member,
    and only then is the transaction committed. If the remote call fails the canonical
    row is rolled back and the task service is asked to drop any copies it may have
    made for that id.
    """

    def __init__(self, db_session: AsyncSession, task_client: TaskServiceClient):
        self.db = db_session
        self.task_client = task_client

    async def list_community_tasks(self, community_id: uuid.UUID) -> List[CommunityTask]:
        result = await self.db.execute(
            select(CommunityTask)
            .where(CommunityTask.community_id == community_id)
            .order_by(CommunityTask.created_at)
        )
        return list(result.scalars().all())

    async def get_community_task(
        self, community_id: uuid.UUID, task_id: uuid.UUID
    ) -> Optional[CommunityTask]:
        result = await self.db.execute(
            select(CommunityTask).where(
                CommunityTask.id == task_id,
                CommunityTask.community_id == community_id,
            )
        )
        return result.scalar_one_or_none()

    async def delete_community_task(self, task_id: uuid.UUID) -> bool:
        result = await self.db.execute(
            delete(CommunityTask).where(CommunityTask.id == task_id)
        )
        await self.db.commit()
        return result.rowcount > 0

    async def get_member_ids(self, community_id: uuid.UUID) -> List[uuid.UUID]:
        """Point-in-time snapshot of the community's members"""
        result = await self.db.execute(
            select(UserJoinCommunity.account_id).where(
                UserJoinCommunity.community_id == community_id
            )
        )
        return list(result.scalars().all())

    async def _compensate(self, community_task_id: uuid.UUID) -> None:
        """Best-effort removal of member copies the task service may already hold"""
        try:
            removed = await self.task_client.remove_community_task(str(community_task_id))
        except ReplicationError as e:
            logger.error(
                "Failed to remove member tasks after rollback; orphaned copies may remain",
                community_task_id=str(community_task_id),
                error_code=e.error_code,
                error=e.message,
            )
            return
        if removed:
            logger.warning(
                "Removed orphaned member tasks after rollback",
                community_task_id=str(community_task_id),
                removed=removed,
            )

    async def create_community_task(
        self, community_id: uuid.UUID, task_data: CreateCommunityTaskRequest
    ) -> CommunityTaskResponse:
        """
        Create the canonical task and a copy for every current member, or nothing.

        Raises:
            NotFoundError: the community does not exist
            ReplicationError: member copies could not be created; nothing was committed
            DatabaseError: the local commit failed after replication
        """
        if await self.db.get(Community, community_id) is None:
            raise NotFoundError("Community not found", error_code="COMMUNITY_NOT_FOUND")

        deadline = to_naive_utc(task_data.deadline) if task_data.deadline else None
        task = CommunityTask(
            id=uuid.uuid4(),
            community_id=community_id,
            title=task_data.title,
            description=task_data.description,
            deadline=deadline,
            subtasks=list(task_data.subtasks),
        )
        self.db.add(task)
        await self.db.flush()

        community_task_id = task.id
        members = await self.get_member_ids(community_id)

        request = AddCommunityTaskRequest(
            community_task_id=str(community_task_id),
            community_id=str(community_id),
            member_ids=[str(m) for m in members],
            title=task.title,
            description=task.description,
            deadline=ProtoTimestamp.from_datetime(deadline) if deadline else None,
            subtasks=list(task.subtasks),
        )

        try:
            await self.task_client.add_community_task(request)
        except ReplicationError as e:
            logger.error(
                "Failed to create task for joined members, undo creating community task",
                community_task_id=str(community_task_id),
                members=[str(m) for m in members],
                error_code=e.error_code,
                error=e.message,
            )
            await self.db.rollback()
            await self._compensate(community_task_id)
            raise ReplicationError(
                "Failed to create task for joined members", error_code=e.error_code
            ) from e

        response = CommunityTaskResponse(
            id=task.id,
            community_id=task.community_id,
            title=task.title,
            description=task.description,
            deadline=task.deadline,
            subtasks=list(task.subtasks),
            created_at=task.created_at,
        )

        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            logger.error(
                "Commit failed after member tasks were created",
                community_task_id=str(community_task_id),
                error=str(e),
            )
            await self.db.rollback()
            await self._compensate(community_task_id)
            raise DatabaseError(
                "Failed to create community task", error_code="COMMUNITY_TASK_CREATION_FAILED"
            ) from e

        logger.info(
            "Created community task for joined members",
            community_task_id=str(community_task_id),
            members=len(members),
        )
        return response


def get_community_task_service(
    db: AsyncSession = Depends(get_async_session),
    task_client: TaskServiceClient = Depends(get_task_service_client),
) -> CommunityTaskService:
    """Dependency to provide CommunityTaskService instance"""
    return CommunityTaskService(db, task_client)
