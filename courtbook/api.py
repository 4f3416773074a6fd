# ============================================================
# Booking API Router
# ------------------------------------------------------------
# Expose les actions d'un joueur sur un créneau (réserver,
# annuler, file d'attente), les vues pour l'affichage et le
# déclenchement manuel d'un passage de promotion.
# L'identité du joueur est fournie par l'appelant
# (paramètre requester_id) ; le service ne garde aucune session.
# ============================================================
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import create_engine

from courtbook.config import DATABASE_URL
from courtbook.errors import AlreadyRegistered, NotFound, NotRegistered, TransactionConflict
from courtbook.models import BookingResult, CancelResult, Registration, SlotView, SweepEntry
from courtbook.quota import QuotaTracker
from courtbook.scheduler import PromotionScheduler
from courtbook.service import BookingService, run_with_retry
from courtbook.store import SlotStore

engine = create_engine(DATABASE_URL, pool_pre_ping=True)
store = SlotStore(engine, QuotaTracker(engine))
booking_service = BookingService(store)
promotion_scheduler = PromotionScheduler(store)

router = APIRouter()


# Dépendances FastAPI : remplacées dans les tests
def get_service() -> BookingService:
    return booking_service


def get_scheduler() -> PromotionScheduler:
    return promotion_scheduler


# Exécute une action avec rejeu sur conflit et traduit les
# erreurs métier en réponses HTTP.
def _run(op):
    try:
        return run_with_retry(op)
    except NotFound:
        raise HTTPException(404, "not found")
    except AlreadyRegistered:
        raise HTTPException(409, "already registered for this slot")
    except NotRegistered:
        raise HTTPException(409, "not registered for this slot")
    except TransactionConflict:
        raise HTTPException(503, "transaction conflict, retry")


@router.get("/health")
def health():
    return {"ok": True}


@router.get("/v1/slots", response_model=List[SlotView])
def list_slots(svc: BookingService = Depends(get_service)):
    return svc.list_slots()


@router.get("/v1/slots/{slot_key}", response_model=SlotView)
def get_slot(slot_key: str, svc: BookingService = Depends(get_service)):
    return _run(lambda: svc.get_slot_view(slot_key))


@router.post("/v1/slots/{slot_key}/book", response_model=BookingResult)
def book(slot_key: str, requester_id: str, svc: BookingService = Depends(get_service)):
    return _run(lambda: svc.book(requester_id, slot_key))


@router.post("/v1/slots/{slot_key}/cancel", response_model=CancelResult)
def cancel(slot_key: str, requester_id: str, svc: BookingService = Depends(get_service)):
    return _run(lambda: svc.cancel(requester_id, slot_key))


@router.post("/v1/slots/{slot_key}/waitlist", response_model=BookingResult)
def join_waitlist(slot_key: str, requester_id: str, svc: BookingService = Depends(get_service)):
    return _run(lambda: svc.join_waitlist(requester_id, slot_key))


@router.delete("/v1/slots/{slot_key}/waitlist", response_model=CancelResult)
def leave_waitlist(slot_key: str, requester_id: str, svc: BookingService = Depends(get_service)):
    return _run(lambda: svc.leave_waitlist(requester_id, slot_key))


@router.post("/v1/promotions/sweep", response_model=List[SweepEntry])
def sweep(scheduler: PromotionScheduler = Depends(get_scheduler)):
    return scheduler.run_sweep()


# ------------------------------------------------------------
# GET /v1/quotas/{requester_id} - heures utilisées cette semaine
# ------------------------------------------------------------
@router.get("/v1/quotas/{requester_id}")
def get_quota(requester_id: str, svc: BookingService = Depends(get_service)):
    q = _run(lambda: svc.get_quota(requester_id))
    return {
        "requester_id": q.requester_id,
        "hours_used": q.confirmed_hours,
        "max_hours": svc.max_weekly_hours,
        "hours_left": max(0, svc.max_weekly_hours - q.confirmed_hours),
        "limit_reached": q.confirmed_hours >= svc.max_weekly_hours,
        "epoch_start": q.epoch_start.isoformat(),
    }


@router.get("/v1/requesters/{requester_id}/registrations", response_model=List[Registration])
def registrations(requester_id: str, svc: BookingService = Depends(get_service)):
    return svc.registrations(requester_id)
