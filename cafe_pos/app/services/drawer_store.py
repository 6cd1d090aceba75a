from __future__ import annotations

from datetime import date

from sqlalchemy.orm import Session, sessionmaker

from cafe_pos.app.models.drawer import DrawerRecord
from cafe_pos.app.schemas.drawer import DrawerState, DrawerStatus


class DrawerStateStore:
    """Reads and writes the drawer record keyed by register and business day.

    Each write replaces the whole record with the in-memory state; the
    persisted copy is never read back to compute a change.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def load(self, register_id: str, business_day: date) -> DrawerState | None:
        with self._session_factory() as db:
            record = (
                db.query(DrawerRecord)
                .filter(
                    DrawerRecord.register_id == register_id,
                    DrawerRecord.business_day == business_day,
                )
                .first()
            )
            if record is None:
                return None
            return DrawerState.model_validate(record.state)

    def load_open(self, register_id: str) -> tuple[date, DrawerState] | None:
        """Most recent record for *register_id* that was never closed, if any."""
        with self._session_factory() as db:
            record = (
                db.query(DrawerRecord)
                .filter(
                    DrawerRecord.register_id == register_id,
                    DrawerRecord.status == DrawerStatus.OPEN.value,
                )
                .order_by(DrawerRecord.business_day.desc())
                .first()
            )
            if record is None:
                return None
            return record.business_day, DrawerState.model_validate(record.state)

    def save(self, state: DrawerState, business_day: date) -> None:
        payload = state.model_dump(mode="json")
        with self._session_factory() as db:
            record = (
                db.query(DrawerRecord)
                .filter(
                    DrawerRecord.register_id == state.register_id,
                    DrawerRecord.business_day == business_day,
                )
                .first()
            )
            if record is None:
                record = DrawerRecord(
                    register_id=state.register_id,
                    business_day=business_day,
                    status=state.status.value,
                    state=payload,
                )
                db.add(record)
            else:
                record.status = state.status.value
                record.state = payload
            db.commit()
