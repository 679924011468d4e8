import uuid
from typing import List

from fastapi import Depends
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Subtask, Task
from app.db.session import get_async_session
from app.schemas.replication_schemas import (
    AddCommunityTaskRequest,
    AddCommunityTaskResult,
    RpcErrorCode,
)
from app.utils.logging import get_logger

logger = get_logger()


def _parse_uuid(value: str, field: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except (ValueError, AttributeError, TypeError):
        raise ValueError(
            f"{RpcErrorCode.INVALID_ARGUMENT.value}: invalid {field} {value!r}"
        ) from None


class TaskReplicationService:
    """Task-service side of community task fan-out: personal copies for each member"""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def count_replicas(self, community_task_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(Task)
            .where(Task.community_task_id == community_task_id)
        )
        return result.scalar_one()

    async def add_community_task(
        self, request: AddCommunityTaskRequest
    ) -> AddCommunityTaskResult:
        """
        Insert one task (plus its subtasks) per member in a single transaction.

        Idempotent on `community_task_id`: a request that was already applied inserts nothing.
        """
        community_task_id = _parse_uuid(request.community_task_id, "community_task_id")
        community_id = _parse_uuid(request.community_id, "community_id")
        member_ids: List[uuid.UUID] = [
            _parse_uuid(member_id, "member id") for member_id in request.member_ids
        ]
        deadline = request.deadline.to_datetime() if request.deadline else None

        if await self.count_replicas(community_task_id) > 0:
            logger.info(
                "Community task already replicated",
                community_task_id=str(community_task_id),
            )
            return AddCommunityTaskResult(created=0, duplicate=True)

        try:
            for member_id in member_ids:
                task = Task(
                    user_id=member_id,
                    community_id=community_id,
                    community_task_id=community_task_id,
                    title=request.title,
                    description=request.description,
                    deadline=deadline,
                )
                task.subtasks = [Subtask(title=title) for title in request.subtasks]
                self.db.add(task)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "Created task for joined members",
            community_task_id=str(community_task_id),
            members=len(member_ids),
        )
        return AddCommunityTaskResult(created=len(member_ids))

    async def remove_community_task(self, community_task_id: str) -> int:
        """Delete every member copy of a community task; returns how many were removed"""
        task_id = _parse_uuid(community_task_id, "community_task_id")
        replica_ids = select(Task.id).where(Task.community_task_id == task_id)

        await self.db.execute(
            delete(Subtask)
            .where(Subtask.task_id.in_(replica_ids))
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(
            delete(Task)
            .where(Task.community_task_id == task_id)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        if result.rowcount:
            logger.info(
                "Removed replicated member tasks",
                community_task_id=community_task_id,
                removed=result.rowcount,
            )
        return result.rowcount


def get_task_replication_service(
    db: AsyncSession = Depends(get_async_session),
) -> TaskReplicationService:
    """Dependency to provide TaskReplicationService instance"""
    return TaskReplicationService(db)
