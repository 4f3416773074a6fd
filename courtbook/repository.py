# ============================================================
# repository.py - Accès aux données Slot / QuotaRecord
# ------------------------------------------------------------
# Design pattern "Repository" : isole les requêtes SQL de la
# logique métier. Les écritures sont conditionnelles à la
# version lue (UPDATE ... WHERE version = :lue) ; une ligne
# non touchée signifie qu'un autre écrivain est passé avant.
# ============================================================
from typing import List, Optional

from sqlalchemy import update
from sqlmodel import Session, select

from courtbook.models import Slot, QuotaRecord


class SlotRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, key: str) -> Optional[Slot]:
        return self.session.get(Slot, key)

    def list(self) -> List[Slot]:
        return list(self.session.exec(select(Slot).order_by(Slot.start_time, Slot.key)).all())

    def keys(self) -> List[str]:
        return list(self.session.exec(select(Slot.key).order_by(Slot.start_time, Slot.key)).all())

    def create(self, s: Slot) -> Slot:
        self.session.add(s)
        self.session.commit()
        self.session.refresh(s)
        return s

    def update_if_version(self, key: str, expected_version: int, **values) -> bool:
        stmt = (
            update(Slot)
            .where(Slot.key == key, Slot.version == expected_version)
            .values(version=expected_version + 1, **values)
        )
        return self.session.connection().execute(stmt).rowcount == 1


class QuotaRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, requester_id: str) -> Optional[QuotaRecord]:
        return self.session.get(QuotaRecord, requester_id)

    def insert(self, q: QuotaRecord) -> None:
        # flush immédiat : une insertion concurrente lève IntegrityError ici
        self.session.add(q)
        self.session.flush()

    def update_if_version(self, requester_id: str, expected_version: int, **values) -> bool:
        stmt = (
            update(QuotaRecord)
            .where(QuotaRecord.requester_id == requester_id, QuotaRecord.version == expected_version)
            .values(version=expected_version + 1, **values)
        )
        return self.session.connection().execute(stmt).rowcount == 1
