# ============================================================
# service.py - Logique métier des réservations
# ------------------------------------------------------------
# Actions d'un joueur sur un créneau, chacune dans UNE
# transaction SlotStore (créneau + quotas) :
#   - book           : inscrit, ou file d'attente si complet
#                      ou si le quota hebdomadaire est atteint
#   - join_waitlist  : file d'attente, sans contrôle de quota
#   - cancel         : désinscrit, puis promeut la tête de file
#   - leave_waitlist : quitte la file d'attente
# Les promotions se font toujours en FIFO (tête de file), sans
# contrôle du quota du joueur promu.
# ============================================================
import logging
import time
from datetime import datetime
from typing import Callable, List, Optional, TypeVar

from courtbook.config import MAX_WEEKLY_HOURS, TX_MAX_ATTEMPTS, TX_RETRY_BACKOFF_SECONDS
from courtbook.errors import AlreadyRegistered, NotRegistered, TransactionConflict
from courtbook.models import (
    BookingResult, CancelResult, QuotaView, Registration, SlotView,
    CONFIRMED, WAITLISTED, REMOVED,
)
from courtbook.publisher import notify_promotion
from courtbook.store import SlotStore, SlotTransaction

logger = logging.getLogger(__name__)

T = TypeVar("T")

REASON_LIMIT = "weekly limit reached"
REASON_FULL = "slot full"

Notifier = Callable[[str, str], None]


def run_with_retry(op: Callable[[], T], attempts: int = TX_MAX_ATTEMPTS,
                   backoff: float = TX_RETRY_BACKOFF_SECONDS) -> T:
    """Re-run ``op`` from scratch while it fails with TransactionConflict."""
    attempt = 0
    while True:
        try:
            return op()
        except TransactionConflict as e:
            attempt += 1
            if attempt >= attempts:
                raise
            wait = min(backoff * attempt, 1.0)
            logger.warning("[booking] %s - retry %d/%d in %.2fs", e, attempt, attempts - 1, wait)
            time.sleep(wait)


def promote_from_waitlist(tx: SlotTransaction, limit: Optional[int] = None) -> List[str]:
    slot = tx.slot
    promoted = []
    while len(slot.confirmed) < slot.capacity and slot.waitlist:
        if limit is not None and len(promoted) >= limit:
            break
        r = slot.waitlist.pop(0)
        slot.confirmed.append(r)
        tx.adjust_confirmed_hours(r, +1)
        promoted.append(r)
    return promoted


def safe_notify(notify: Notifier, requester_id: str, key: str) -> None:
    # effet de bord "fire-and-forget" : ne jamais annuler la promotion
    try:
        notify(requester_id, key)
    except Exception:
        logger.exception("[booking] notification failed for %s on %s", requester_id, key)


class BookingService:
    def __init__(self, store: SlotStore, max_weekly_hours: int = MAX_WEEKLY_HOURS,
                 notify: Notifier = notify_promotion):
        self.store = store
        self.max_weekly_hours = max_weekly_hours
        self.notify = notify

    def book(self, requester_id: str, key: str, now: Optional[datetime] = None) -> BookingResult:
        def apply(tx: SlotTransaction) -> BookingResult:
            slot = tx.slot
            if slot.holds(requester_id):
                raise AlreadyRegistered(requester_id, key)
            quota = tx.quota(requester_id)
            # le quota passe avant la place libre
            if quota.confirmed_hours >= self.max_weekly_hours:
                slot.waitlist.append(requester_id)
                return BookingResult(status=WAITLISTED, reason=REASON_LIMIT)
            if len(slot.confirmed) < slot.capacity:
                slot.confirmed.append(requester_id)
                tx.adjust_confirmed_hours(requester_id, +1)
                return BookingResult(status=CONFIRMED)
            slot.waitlist.append(requester_id)
            return BookingResult(status=WAITLISTED, reason=REASON_FULL)

        result = self.store.transact(key, apply, now)
        logger.info("[booking] book %s on %s -> %s%s", requester_id, key, result.status,
                    f" ({result.reason})" if result.reason else "")
        return result

    def join_waitlist(self, requester_id: str, key: str, now: Optional[datetime] = None) -> BookingResult:
        def apply(tx: SlotTransaction) -> BookingResult:
            if tx.slot.holds(requester_id):
                raise AlreadyRegistered(requester_id, key)
            tx.slot.waitlist.append(requester_id)
            return BookingResult(status=WAITLISTED)

        result = self.store.transact(key, apply, now)
        logger.info("[booking] %s joined the waitlist of %s", requester_id, key)
        return result

    def cancel(self, requester_id: str, key: str, now: Optional[datetime] = None) -> CancelResult:
        def apply(tx: SlotTransaction) -> CancelResult:
            slot = tx.slot
            if requester_id not in slot.confirmed:
                raise NotRegistered(requester_id, key)
            slot.confirmed.remove(requester_id)
            tx.adjust_confirmed_hours(requester_id, -1)
            promoted = promote_from_waitlist(tx, limit=1)
            return CancelResult(status=REMOVED, promoted=promoted[0] if promoted else None)

        result = self.store.transact(key, apply, now)
        logger.info("[booking] %s cancelled %s", requester_id, key)
        if result.promoted:
            logger.info("[booking] promoted %s on %s after cancellation", result.promoted, key)
            safe_notify(self.notify, result.promoted, key)
        return result

    def leave_waitlist(self, requester_id: str, key: str, now: Optional[datetime] = None) -> CancelResult:
        def apply(tx: SlotTransaction) -> CancelResult:
            if requester_id not in tx.slot.waitlist:
                raise NotRegistered(requester_id, key)
            tx.slot.waitlist.remove(requester_id)
            return CancelResult(status=REMOVED)

        result = self.store.transact(key, apply, now)
        logger.info("[booking] %s left the waitlist of %s", requester_id, key)
        return result

    # --------------------------------------------------------
    # Lectures pour l'affichage
    # --------------------------------------------------------
    def get_slot_view(self, key: str, now: Optional[datetime] = None) -> SlotView:
        return self.store.get(key, now)

    def list_slots(self, now: Optional[datetime] = None) -> List[SlotView]:
        return self.store.list(now)

    def get_quota(self, requester_id: str, now: Optional[datetime] = None) -> QuotaView:
        return self.store.quotas.get_and_maybe_reset(requester_id, now)

    def registrations(self, requester_id: str, now: Optional[datetime] = None) -> List[Registration]:
        res = []
        for slot in self.store.list(now):
            if requester_id in slot.confirmed:
                res.append(Registration(slot_key=slot.key, status=CONFIRMED))
            elif requester_id in slot.waitlist:
                res.append(Registration(slot_key=slot.key, status=WAITLISTED))
        return res
