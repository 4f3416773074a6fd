# ============================================================
# quota.py - Quota hebdomadaire des joueurs
# ------------------------------------------------------------
# Chaque joueur a un compteur d'heures confirmées pour la
# semaine courante (époque = lundi 00:00, fuseau LOCAL_TZ).
# Pas de tâche de remise à zéro : la première lecture ou
# écriture après le changement de semaine remet le compteur
# à 0 et avance epoch_start.
# ============================================================
import logging
from datetime import datetime
from typing import Callable, Optional, Tuple

from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from courtbook.config import LOCAL_TZ
from courtbook.errors import TransactionConflict
from courtbook.models import QuotaRecord, QuotaView
from courtbook.repository import QuotaRepository
from courtbook.schedule import as_utc, utcnow, week_start

logger = logging.getLogger(__name__)


class QuotaTracker:
    def __init__(self, engine: Engine, tz=LOCAL_TZ, clock: Callable[[], datetime] = utcnow):
        self.engine = engine
        self.tz = tz
        self.clock = clock

    def current_epoch(self, now: datetime) -> datetime:
        return week_start(now, self.tz)

    # --------------------------------------------------------
    # Primitives utilisées à l'intérieur d'une transaction
    # --------------------------------------------------------
    def load(self, session: Session, requester_id: str, now: datetime) -> Tuple[QuotaView, bool]:
        """Read a requester's quota with the epoch rollover applied.

        Returns the view and whether it differs from what is stored
        (new record, or reset to a new week).
        """
        epoch = self.current_epoch(now)
        row = QuotaRepository(session).get(requester_id)
        if row is None:
            return QuotaView(requester_id=requester_id, confirmed_hours=0, epoch_start=epoch), True
        view = QuotaView(
            requester_id=row.requester_id,
            confirmed_hours=row.confirmed_hours,
            epoch_start=as_utc(row.epoch_start),
            version=row.version,
        )
        if view.epoch_start < epoch:
            logger.info("[quota] weekly reset for %s (%d hours dropped)", requester_id, view.confirmed_hours)
            view.confirmed_hours = 0
            view.epoch_start = epoch
            return view, True
        return view, False

    @staticmethod
    def apply_delta(view: QuotaView, delta: int) -> QuotaView:
        # jamais négatif
        view.confirmed_hours = max(0, view.confirmed_hours + delta)
        return view

    def save(self, session: Session, view: QuotaView) -> None:
        repo = QuotaRepository(session)
        if view.version is None:
            repo.insert(QuotaRecord(
                requester_id=view.requester_id,
                confirmed_hours=view.confirmed_hours,
                epoch_start=as_utc(view.epoch_start),
            ))
            return
        ok = repo.update_if_version(
            view.requester_id,
            view.version,
            confirmed_hours=view.confirmed_hours,
            epoch_start=as_utc(view.epoch_start),
        )
        if not ok:
            raise TransactionConflict(f"quota of {view.requester_id} changed concurrently")

    # --------------------------------------------------------
    # Opérations autonomes (une transaction chacune)
    # --------------------------------------------------------
    def get_and_maybe_reset(self, requester_id: str, now: Optional[datetime] = None) -> QuotaView:
        now = as_utc(now or self.clock())
        with Session(self.engine) as s:
            view, changed = self.load(s, requester_id, now)
            # un joueur inconnu n'est créé qu'à sa première réservation
            if changed and view.version is not None:
                self._commit(s, view)
                view.version += 1
            return view

    def adjust_confirmed_hours(self, requester_id: str, delta: int, now: Optional[datetime] = None) -> QuotaView:
        now = as_utc(now or self.clock())
        with Session(self.engine) as s:
            view, _ = self.load(s, requester_id, now)
            self.apply_delta(view, delta)
            self._commit(s, view)
            view.version = 0 if view.version is None else view.version + 1
            return view

    def _commit(self, session: Session, view: QuotaView) -> None:
        try:
            self.save(session, view)
            session.commit()
        except IntegrityError as e:
            raise TransactionConflict(f"quota of {view.requester_id} created concurrently") from e
