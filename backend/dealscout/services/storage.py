"""Persistence gateway. All queries the pipeline and API issue go through here."""
from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import func, or_, select, text, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from dealscout.models import (
    AgentConfiguration,
    ApprovalStatus,
    DiscoveryQueueItem,
    Report,
    ResearchStatus,
    Workflow,
    WorkflowStatus,
)


class Storage:
    def __init__(self, session_maker: async_sessionmaker) -> None:
        self._session_maker = session_maker

    async def _get(self, model, row_id: int):
        async with self._session_maker() as session:
            return await session.get(model, row_id)

    async def _insert(self, model, **fields: Any):
        async with self._session_maker() as session:
            row = model(**fields)
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return row

    async def _update(self, model, row_id: int, **fields: Any):
        async with self._session_maker() as session:
            row = await session.get(model, row_id)
            if row is None:
                return None
            for key, value in fields.items():
                setattr(row, key, value)
            await session.commit()
            await session.refresh(row)
            return row

    # Agent configurations

    async def list_configs(self) -> List[AgentConfiguration]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(AgentConfiguration).order_by(AgentConfiguration.created_at.desc())
            )
            return list(result.scalars().all())

    async def list_active_configs(self) -> List[AgentConfiguration]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(AgentConfiguration).where(AgentConfiguration.is_active.is_(True))
            )
            return list(result.scalars().all())

    async def get_config(self, config_id: int) -> Optional[AgentConfiguration]:
        return await self._get(AgentConfiguration, config_id)

    async def create_config(self, **fields: Any) -> AgentConfiguration:
        return await self._insert(AgentConfiguration, **fields)

    async def update_config(self, config_id: int, **fields: Any) -> Optional[AgentConfiguration]:
        return await self._update(AgentConfiguration, config_id, **fields)

    async def delete_config(self, config_id: int) -> bool:
        async with self._session_maker() as session:
            row = await session.get(AgentConfiguration, config_id)
            if row is None:
                return False
            await session.execute(
                update(Workflow).where(Workflow.config_id == config_id).values(config_id=None)
            )
            await session.delete(row)
            await session.commit()
            return True

    # Workflows

    async def create_workflow(self, **fields: Any) -> Workflow:
        return await self._insert(Workflow, **fields)

    async def update_workflow(self, workflow_id: int, **fields: Any) -> Optional[Workflow]:
        return await self._update(Workflow, workflow_id, **fields)

    async def get_workflow(self, workflow_id: int) -> Optional[Workflow]:
        return await self._get(Workflow, workflow_id)

    async def list_workflows(self, limit: int = 20) -> List[Workflow]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(Workflow).order_by(Workflow.created_at.desc(), Workflow.id.desc()).limit(limit)
            )
            return list(result.scalars().all())

    async def finish_workflow(self, workflow_id: int, status: WorkflowStatus, **fields: Any) -> bool:
        """Set the terminal status of a still-running workflow.

        Returns False when the row already left ``running`` (for example after
        orphan recovery), in which case nothing is written.
        """
        async with self._session_maker() as session:
            result = await session.execute(
                update(Workflow)
                .where(Workflow.id == workflow_id, Workflow.status == WorkflowStatus.running)
                .values(status=status, completed_at=datetime.utcnow(), **fields)
            )
            await session.commit()
            return bool(result.rowcount)

    async def fail_orphaned_workflows(self) -> int:
        """Mark every ``running`` workflow failed. Counters are left untouched."""
        async with self._session_maker() as session:
            result = await session.execute(
                update(Workflow)
                .where(Workflow.status == WorkflowStatus.running)
                .values(status=WorkflowStatus.failed, completed_at=datetime.utcnow())
            )
            await session.commit()
            return int(result.rowcount or 0)

    # Discovery queue

    async def find_existing_company(self, name: str, url: Optional[str] = None) -> Optional[DiscoveryQueueItem]:
        conditions = [func.lower(DiscoveryQueueItem.company_name) == (name or "").lower()]
        if url:
            conditions.append(DiscoveryQueueItem.website_url == url)
        async with self._session_maker() as session:
            result = await session.execute(
                select(DiscoveryQueueItem).where(or_(*conditions)).limit(1)
            )
            return result.scalars().first()

    async def add_to_discovery_queue(self, **fields: Any) -> DiscoveryQueueItem:
        return await self._insert(DiscoveryQueueItem, **fields)

    async def update_queue_item(self, queue_id: int, **fields: Any) -> Optional[DiscoveryQueueItem]:
        return await self._update(DiscoveryQueueItem, queue_id, **fields)

    async def get_queue_item(self, queue_id: int) -> Optional[DiscoveryQueueItem]:
        return await self._get(DiscoveryQueueItem, queue_id)

    async def list_pending_queue_items(self) -> List[DiscoveryQueueItem]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(DiscoveryQueueItem)
                .where(DiscoveryQueueItem.approval_status == ApprovalStatus.pending)
                .order_by(DiscoveryQueueItem.created_at.desc())
            )
            return list(result.scalars().all())

    async def list_queue_items_for_workflow(self, workflow_id: int) -> List[DiscoveryQueueItem]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(DiscoveryQueueItem)
                .where(DiscoveryQueueItem.workflow_id == workflow_id)
                .order_by(DiscoveryQueueItem.id)
            )
            return list(result.scalars().all())

    # Reports

    async def save_research_report(self, queue_id: Optional[int], **fields: Any) -> Report:
        """Insert the report and link it to its queue item in one transaction."""
        async with self._session_maker() as session:
            async with session.begin():
                report = Report(**fields)
                session.add(report)
                await session.flush()
                if queue_id is not None:
                    item = await session.get(DiscoveryQueueItem, queue_id)
                    if item is not None:
                        item.research_status = ResearchStatus.completed
                        item.report_id = report.id
            await session.refresh(report)
            return report

    async def get_report(self, report_id: int) -> Optional[Report]:
        return await self._get(Report, report_id)

    async def list_reports(self, status: Optional[str] = None) -> List[Report]:
        stmt = select(Report).order_by(Report.created_at.desc(), Report.id.desc())
        if status:
            stmt = stmt.where(Report.status == status)
        async with self._session_maker() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def ping(self) -> bool:
        async with self._session_maker() as session:
            await session.execute(text("SELECT 1"))
        return True
