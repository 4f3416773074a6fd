# ============================================================
# errors.py - Erreurs métier
# ------------------------------------------------------------
# NotFound, AlreadyRegistered et NotRegistered sont définitives
# pour la requête. TransactionConflict est transitoire : on
# rejoue toute l'opération avec des lectures fraîches.
# ============================================================


class BookingError(Exception):
    pass


class NotFound(BookingError):
    def __init__(self, slot_key: str):
        super().__init__(f"unknown slot {slot_key!r}")
        self.slot_key = slot_key


class AlreadyRegistered(BookingError):
    def __init__(self, requester_id: str, slot_key: str):
        super().__init__(f"{requester_id} is already registered for {slot_key}")
        self.requester_id = requester_id
        self.slot_key = slot_key


class NotRegistered(BookingError):
    def __init__(self, requester_id: str, slot_key: str):
        super().__init__(f"{requester_id} is not registered for {slot_key}")
        self.requester_id = requester_id
        self.slot_key = slot_key


class TransactionConflict(BookingError):
    """Another writer committed between our read and our write."""
