import json
from datetime import datetime

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy import select
from .models import Base, AuditLog


class DB:
    def __init__(self, database_url: str):
        self.engine = create_async_engine(database_url, echo=False)
        self.Session = async_sessionmaker(self.engine, expire_on_commit=False, class_=AsyncSession)

    async def init_models(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self):
        await self.engine.dispose()

    async def log_audit(self, user_id: int | None, admin_id: int | None, action: str,
                        details: dict | None = None) -> int:
        details_json = json.dumps(details or {}, ensure_ascii=False, default=str)
        async with self.Session() as session:
            obj = AuditLog(
                user_id=user_id,
                admin_id=admin_id,
                action=(action or "")[:64],
                details_json=details_json,
                created_at=datetime.utcnow(),
            )
            session.add(obj)
            await session.commit()
            return obj.id

    async def list_audit(self, user_id: int | None = None, action: str | None = None,
                         limit: int = 50) -> list[AuditLog]:
        async with self.Session() as session:
            q = select(AuditLog)
            if user_id is not None:
                q = q.where(AuditLog.user_id == user_id)
            if action:
                q = q.where(AuditLog.action == action)
            res = await session.execute(q.order_by(AuditLog.id.desc()).limit(limit))
            return list(res.scalars().all())

