# ============================================================
# models.py - Modèles de données SQLModel
# ------------------------------------------------------------
# Tables :
#   1. Slot : un créneau (jour, heure) avec inscrits et file d'attente
#   2. QuotaRecord : heures confirmées d'un joueur pour la semaine
# Vues (non persistées) : projections renvoyées par l'API et
# copies de travail manipulées dans une transaction.
# ============================================================
from sqlmodel import SQLModel, Field
from sqlalchemy import Column, DateTime, JSON
from datetime import datetime
from typing import List, Optional

CONFIRMED = "CONFIRMED"
WAITLISTED = "WAITLISTED"
REMOVED = "REMOVED"


# ------------------------------------------------------------
# Slot
# ------------------------------------------------------------
# - confirmed : joueurs inscrits, au plus `capacity`
# - waitlist  : file FIFO des joueurs en attente
# - version   : incrémentée à chaque écriture (verrou optimiste)
# ------------------------------------------------------------
class Slot(SQLModel, table=True):
    key: str = Field(primary_key=True)
    day: str
    time_label: str
    capacity: int
    start_time: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    confirmed: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    waitlist: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    version: int = 0


class QuotaRecord(SQLModel, table=True):
    requester_id: str = Field(primary_key=True)
    confirmed_hours: int = 0
    epoch_start: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))  # lundi 00:00
    version: int = 0


class SlotView(SQLModel):
    key: str
    day: str
    time_label: str
    capacity: int
    start_time: datetime
    confirmed: List[str] = Field(default_factory=list)
    waitlist: List[str] = Field(default_factory=list)
    closed: bool = False

    def holds(self, requester_id: str) -> bool:
        return requester_id in self.confirmed or requester_id in self.waitlist


class QuotaView(SQLModel):
    requester_id: str
    confirmed_hours: int = 0
    epoch_start: datetime
    # None tant que l'enregistrement n'existe pas en base
    version: Optional[int] = None


class BookingResult(SQLModel):
    status: str
    reason: Optional[str] = None


class CancelResult(SQLModel):
    status: str = REMOVED
    promoted: Optional[str] = None


class SweepEntry(SQLModel):
    slot_key: str
    promoted: List[str] = Field(default_factory=list)


class Registration(SQLModel):
    slot_key: str
    status: str
