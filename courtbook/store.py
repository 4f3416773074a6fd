# ============================================================
# store.py - Stockage des créneaux et frontière transactionnelle
# ------------------------------------------------------------
# SlotStore.transact(key, fn) :
#   1. lit le créneau (et, à la demande, les quotas touchés)
#   2. applique fn sur une copie de travail
#   3. écrit créneau + quotas dans la même transaction SQL,
#      chaque ligne conditionnée à la version lue
# Si fn lève une exception rien n'est écrit. Si un autre
# écrivain est passé entre la lecture et l'écriture, on
# annule tout et on lève TransactionConflict.
# Deux clés différentes ne se bloquent jamais.
# ============================================================
import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple, TypeVar

from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from courtbook.config import MAX_PER_SLOT
from courtbook.errors import NotFound, TransactionConflict
from courtbook.models import Slot, SlotView, QuotaView
from courtbook.quota import QuotaTracker
from courtbook.repository import SlotRepository
from courtbook.schedule import as_utc, occurrence_in_week, shift_weeks, slot_key, utcnow

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SlotTransaction:
    """Working copy of one slot plus the quota records it touches."""

    def __init__(self, session: Session, slot: SlotView, quotas: QuotaTracker, now: datetime):
        self.session = session
        self.slot = slot
        self.now = now
        self._tracker = quotas
        self._quotas: Dict[str, QuotaView] = {}
        self._dirty = set()

    def quota(self, requester_id: str) -> QuotaView:
        if requester_id not in self._quotas:
            view, changed = self._tracker.load(self.session, requester_id, self.now)
            self._quotas[requester_id] = view
            if changed:
                self._dirty.add(requester_id)
        return self._quotas[requester_id]

    def adjust_confirmed_hours(self, requester_id: str, delta: int) -> QuotaView:
        view = self._tracker.apply_delta(self.quota(requester_id), delta)
        self._dirty.add(requester_id)
        return view

    def dirty_quotas(self) -> List[QuotaView]:
        return [self._quotas[r] for r in sorted(self._dirty)]


class SlotStore:
    def __init__(self, engine: Engine, quotas: QuotaTracker, clock: Callable[[], datetime] = utcnow):
        self.engine = engine
        self.quotas = quotas
        self.clock = clock

    @property
    def tz(self):
        return self.quotas.tz

    # --------------------------------------------------------
    # Lecture
    # --------------------------------------------------------
    def get(self, key: str, now: Optional[datetime] = None) -> SlotView:
        now = as_utc(now or self.clock())
        with Session(self.engine) as s:
            row = SlotRepository(s).get(key)
            if row is None:
                raise NotFound(key)
            view, _ = self._project(row, now)
            return view

    def list(self, now: Optional[datetime] = None) -> List[SlotView]:
        now = as_utc(now or self.clock())
        with Session(self.engine) as s:
            return [self._project(row, now)[0] for row in SlotRepository(s).list()]

    def keys(self) -> List[str]:
        with Session(self.engine) as s:
            return SlotRepository(s).keys()

    # --------------------------------------------------------
    # Écriture atomique
    # --------------------------------------------------------
    def transact(self, key: str, fn: Callable[[SlotTransaction], T], now: Optional[datetime] = None) -> T:
        now = as_utc(now or self.clock())
        with Session(self.engine) as s:
            repo = SlotRepository(s)
            row = repo.get(key)
            if row is None:
                raise NotFound(key)
            version = row.version
            view, rolled = self._project(row, now)
            before = (list(view.confirmed), list(view.waitlist))

            tx = SlotTransaction(s, view, self.quotas, now)
            result = fn(tx)

            try:
                if rolled or before != (view.confirmed, view.waitlist):
                    ok = repo.update_if_version(
                        key,
                        version,
                        start_time=as_utc(view.start_time),
                        confirmed=list(view.confirmed),
                        waitlist=list(view.waitlist),
                    )
                    if not ok:
                        raise TransactionConflict(f"slot {key} changed concurrently")
                for q in tx.dirty_quotas():
                    self.quotas.save(s, q)
                s.commit()
            except IntegrityError as e:
                raise TransactionConflict(f"concurrent insert while writing {key}") from e
            return result

    # --------------------------------------------------------
    # Initialisation de la grille hebdomadaire
    # --------------------------------------------------------
    def ensure_schedule(self, days: Iterable[str], times: Iterable[Tuple[str, int]],
                        capacity: int = MAX_PER_SLOT, now: Optional[datetime] = None) -> List[str]:
        now = as_utc(now or self.clock())
        created = []
        times = list(times)
        for day in days:
            for label, hour in times:
                start = occurrence_in_week(day, hour, now, self.tz)
                if self.create_slot(day, label, start, capacity):
                    created.append(slot_key(day, label))
        if created:
            logger.info("[booking] created %d slots: %s", len(created), ", ".join(created))
        return created

    def create_slot(self, day: str, time_label: str, start_time: datetime, capacity: int = MAX_PER_SLOT) -> bool:
        key = slot_key(day, time_label)
        with Session(self.engine) as s:
            repo = SlotRepository(s)
            if repo.get(key) is not None:
                return False
            try:
                repo.create(Slot(key=key, day=day, time_label=time_label,
                                 capacity=capacity, start_time=as_utc(start_time)))
            except IntegrityError:
                # créé entre-temps par une autre instance
                s.rollback()
                return False
        return True

    # --------------------------------------------------------
    # Projection : un créneau d'une semaine passée est ramené
    # dans la semaine courante avec des listes vides.
    # --------------------------------------------------------
    def _project(self, row: Slot, now: datetime) -> Tuple[SlotView, bool]:
        start = as_utc(row.start_time)
        confirmed, waitlist = list(row.confirmed or []), list(row.waitlist or [])
        epoch = self.quotas.current_epoch(now)
        rolled = False
        weeks = 0
        while shift_weeks(start, weeks, self.tz) < epoch:
            weeks += 1
        if weeks:
            start = shift_weeks(start, weeks, self.tz)
            confirmed, waitlist = [], []
            rolled = True
        view = SlotView(
            key=row.key,
            day=row.day,
            time_label=row.time_label,
            capacity=row.capacity,
            start_time=start,
            confirmed=confirmed,
            waitlist=waitlist,
            closed=start <= now,
        )
        return view, rolled
