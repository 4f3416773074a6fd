# ============================================================
# publisher.py - Émission d'événements RabbitMQ
# ------------------------------------------------------------
# Publie les événements du service (WaitlistPromoted) sur
# l'échange fanout "events". Le service de notification les
# consomme pour prévenir les joueurs par courriel.
# ============================================================
import json
import logging

import pika

from courtbook.config import RABBITMQ_HOST
from courtbook.schedule import parse_slot_key, requester_email

logger = logging.getLogger(__name__)

EXCHANGE = "events"


# Publie un message {"type", "payload"} en mode fanout :
# tous les consommateurs liés à l'échange le reçoivent.
def publish_event(event_type: str, payload: dict, host: str = RABBITMQ_HOST):
    conn = pika.BlockingConnection(pika.ConnectionParameters(host=host))
    try:
        ch = conn.channel()
        # durable=True pour survivre aux redémarrages RabbitMQ
        ch.exchange_declare(exchange=EXCHANGE, exchange_type="fanout", durable=True)
        message = {"type": event_type, "payload": payload}
        ch.basic_publish(exchange=EXCHANGE, routing_key="", body=json.dumps(message))
        logger.info("[event] %s %s", event_type, payload)
    finally:
        conn.close()


def promotion_payload(requester_id: str, key: str) -> dict:
    day, time_label = parse_slot_key(key)
    return {
        "requesterId": requester_id,
        "email": requester_email(requester_id),
        "slotKey": key,
        "day": day,
        "timeLabel": time_label,
    }


def notify_promotion(requester_id: str, key: str):
    publish_event("WaitlistPromoted", promotion_payload(requester_id, key))
