"""Repository for saved graph layouts."""
import logging
from typing import Any, Dict, Optional

from sqlalchemy import delete, select

from notegraph.models.db_models import DBGraphLayout
from notegraph.models.schema import utc_now

logger = logging.getLogger(__name__)

Positions = Dict[str, Dict[str, Any]]


class GraphLayoutRepository:
    """One row of node positions per (user, group key)."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def get(self, user_id: str, group_key: str) -> Optional[Positions]:
        with self.session_factory() as session:
            db_layout = session.get(DBGraphLayout, (user_id, group_key))
            return dict(db_layout.positions) if db_layout else None

    def get_all(self, user_id: str) -> Dict[str, Positions]:
        """Map every saved group key of the user to its positions."""
        with self.session_factory() as session:
            rows = session.scalars(
                select(DBGraphLayout)
                .where(DBGraphLayout.user_id == user_id)
                .order_by(DBGraphLayout.group_key)
            ).all()
            return {row.group_key: dict(row.positions) for row in rows}

    def save(self, user_id: str, group_key: str, positions: Positions) -> None:
        """Insert or replace the positions stored under ``group_key``."""
        with self.session_factory() as session:
            db_layout = session.get(DBGraphLayout, (user_id, group_key))
            if db_layout is None:
                session.add(DBGraphLayout(
                    user_id=user_id,
                    group_key=group_key,
                    positions=positions,
                    updated_at=utc_now(),
                ))
            else:
                # JSON columns do not track in-place mutation, so assign a new value
                db_layout.positions = positions
                db_layout.updated_at = utc_now()
            session.commit()
        logger.debug(f"Saved {len(positions)} positions for {user_id}/{group_key}")

    def delete(self, user_id: str, group_key: str) -> bool:
        with self.session_factory() as session:
            result = session.execute(
                delete(DBGraphLayout).where(
                    (DBGraphLayout.user_id == user_id)
                    & (DBGraphLayout.group_key == group_key)
                )
            )
            session.commit()
            return bool(result.rowcount)

    def delete_all(self, user_id: str) -> int:
        with self.session_factory() as session:
            result = session.execute(
                delete(DBGraphLayout).where(DBGraphLayout.user_id == user_id)
            )
            session.commit()
            return result.rowcount or 0
