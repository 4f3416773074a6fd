# ============================================================
# app.py - Point d'entrée du service de réservation
# ------------------------------------------------------------
# Au démarrage :
#   1. crée les tables et la grille des créneaux de la semaine
#   2. lance la minuterie de promotion (un passage immédiat)
#   3. lance le consommateur de notifications RabbitMQ
# ============================================================
import logging
import threading

from fastapi import FastAPI
from sqlmodel import SQLModel

from courtbook import models  # noqa: F401  (enregistre les tables)
from courtbook.api import router, engine, store, promotion_scheduler
from courtbook.config import (
    ENABLE_NOTIFICATION_CONSUMER, ENABLE_SCHEDULER, LOG_LEVEL,
    MAX_PER_SLOT, SCHEDULE_DAYS, SCHEDULE_TIMES,
)
from courtbook.consumer import start_consumer

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")

app = FastAPI(title="Court Booking Service")


@app.on_event("startup")
def start():
    SQLModel.metadata.create_all(engine)
    store.ensure_schedule(SCHEDULE_DAYS, SCHEDULE_TIMES, capacity=MAX_PER_SLOT)
    if ENABLE_SCHEDULER:
        promotion_scheduler.start()
    if ENABLE_NOTIFICATION_CONSUMER:
        threading.Thread(target=start_consumer, daemon=True).start()


@app.on_event("shutdown")
def stop():
    promotion_scheduler.stop(timeout=5)


app.include_router(router)
