# ============================================================
# consumer.py - Notifications (consommateur RabbitMQ)
# ------------------------------------------------------------
# Écoute l'échange "events" et simule l'envoi d'un courriel
# pour chaque joueur promu de la file d'attente.
# ============================================================
import json
import logging
import time

import pika

from courtbook.config import RABBITMQ_HOST
from courtbook.publisher import EXCHANGE

logger = logging.getLogger(__name__)


def on_message(ch, method, properties, body):
    try:
        msg = json.loads(body)
    except ValueError as e:
        logger.warning("[notification] bad payload: %s", e)
        return
    if msg.get("type") != "WaitlistPromoted":
        return
    p = msg.get("payload", {})
    logger.info(
        "[notification] mock email to %s: You have been promoted to the main list for %s %s.",
        p.get("email"), p.get("day"), p.get("timeLabel"),
    )


# Boucle de connexion + consommation, avec attente croissante
# tant que RabbitMQ n'est pas joignable.
def start_consumer(host: str = RABBITMQ_HOST):
    attempt = 0
    while True:
        try:
            logger.info("[notification] connecting to rabbitmq at %s...", host)
            conn = pika.BlockingConnection(pika.ConnectionParameters(host=host, heartbeat=60))
            ch = conn.channel()
            ch.exchange_declare(exchange=EXCHANGE, exchange_type="fanout", durable=True)
            # queue anonyme, exclusive à ce consommateur
            q = ch.queue_declare(queue="", exclusive=True).method.queue
            ch.queue_bind(exchange=EXCHANGE, queue=q)
            logger.info("[notification] bound to '%s'. waiting...", EXCHANGE)
            attempt = 0
            ch.basic_consume(queue=q, on_message_callback=on_message, auto_ack=True)
            ch.start_consuming()
        except Exception as e:
            attempt += 1
            wait = min(5 * attempt, 30)
            logger.warning("[notification] connection error: %s - retrying in %ss", e, wait)
            time.sleep(wait)
