# ============================================================
# scheduler.py - Promotion automatique de la file d'attente
# ------------------------------------------------------------
# À chaque passage, pour chaque créneau (une transaction par
# créneau) : si le début est dans moins de
# PROMOTION_WINDOW_MINUTES, on remplit les places libres avec
# la tête de la file d'attente, sans contrôle de quota, et on
# notifie chaque joueur promu après le commit.
# Un passage peut être relancé à volonté : une fois les places
# remplies ou la file vide, il ne change plus rien.
# ============================================================
import logging
import threading
from datetime import datetime, timedelta
from typing import List, Optional

from courtbook.config import PROMOTION_INTERVAL_SECONDS, PROMOTION_WINDOW_MINUTES, TX_MAX_ATTEMPTS
from courtbook.models import SweepEntry
from courtbook.publisher import notify_promotion
from courtbook.schedule import as_utc
from courtbook.service import Notifier, promote_from_waitlist, run_with_retry, safe_notify
from courtbook.store import SlotStore, SlotTransaction

logger = logging.getLogger(__name__)


class PromotionScheduler:
    def __init__(self, store: SlotStore, notify: Notifier = notify_promotion,
                 window_minutes: int = PROMOTION_WINDOW_MINUTES,
                 interval_seconds: float = PROMOTION_INTERVAL_SECONDS,
                 max_attempts: int = TX_MAX_ATTEMPTS):
        self.store = store
        self.notify = notify
        self.window = timedelta(minutes=window_minutes)
        self.interval_seconds = interval_seconds
        self.max_attempts = max_attempts
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def in_window(self, start_time: datetime, now: datetime) -> bool:
        until = as_utc(start_time) - now
        return timedelta(0) < until <= self.window

    def run_sweep(self, now: Optional[datetime] = None) -> List[SweepEntry]:
        now = as_utc(now or self.store.clock())

        def promote(tx: SlotTransaction) -> List[str]:
            if not self.in_window(tx.slot.start_time, now):
                return []
            return promote_from_waitlist(tx)

        results = []
        for key in self.store.keys():
            try:
                promoted = run_with_retry(lambda k=key: self.store.transact(k, promote, now),
                                          attempts=self.max_attempts)
            except Exception:
                # un créneau en échec n'arrête pas le passage
                logger.exception("[scheduler] promotion failed for %s", key)
                continue
            if not promoted:
                continue
            logger.info("[scheduler] promoted %s on %s", ", ".join(promoted), key)
            for r in promoted:
                safe_notify(self.notify, r, key)
            results.append(SweepEntry(slot_key=key, promoted=promoted))
        return results

    # --------------------------------------------------------
    # Minuterie : un passage au démarrage, puis toutes les
    # interval_seconds jusqu'à stop().
    # --------------------------------------------------------
    def start(self) -> threading.Thread:
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="promotion-scheduler", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout: Optional[float] = None):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)

    def _loop(self):
        logger.info("[scheduler] started, sweeping every %ss", self.interval_seconds)
        while not self._stop.is_set():
            try:
                self.run_sweep()
            except Exception:
                logger.exception("[scheduler] sweep failed")
            self._stop.wait(self.interval_seconds)
        logger.info("[scheduler] stopped")
