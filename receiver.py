"""
Standalone consumer for book lifecycle events. Any event that can move a
user's reading goal counter triggers the authoritative recount for that
user, which repairs drift left by failed or racing fast-path updates.

Run with: python receiver.py
"""
from dotenv import load_dotenv
import pika, os, json, time, sys, asyncio, logging

load_dotenv()

import constants
from crud.crud import MongoCRUD
from lib.mongo import DBClient
from log import setup_global_logger
from pymongo.errors import PyMongoError
from services.statistics import StatisticsAggregator
from utils.errors import NotFoundError

logger = logging.getLogger("receiver")

RABBITMQ_CONNECT_HOST = os.getenv("RABBITMQ_HOST", "localhost")


def build_aggregator() -> StatisticsAggregator:
    mongo = DBClient.get_instance(uri=os.getenv("MONGO_URI", "mongodb://localhost:27017"), db_name=os.getenv("DB_NAME", "book-tracker"))
    return StatisticsAggregator(
        MongoCRUD(mongo, constants.BOOKS_COLLECTION),
        MongoCRUD(mongo, constants.USERS_COLLECTION),
    )


def handle_event(aggregator: StatisticsAggregator, data: dict[str, any]) -> int | None:
    """
    Processes one decoded event. Returns the synced counter value, or None
    when the event does not affect the reading goal.
    """
    if data.get("action") not in constants.GOAL_SYNC_ACTIONS:
        return None
    user_id = data.get("user_id")
    if not user_id:
        logger.warning(f"Dropping '{data.get('action')}' event without user_id")
        return None
    try:
        current = asyncio.run(aggregator.sync_goal_counter(user_id))
    except NotFoundError:
        logger.warning(f"User '{user_id}' no longer exists, skipping goal sync")
        return None
    logger.info(f"Synced reading goal of user '{user_id}' to {current} after '{data['action']}'")
    return current


def connect(max_retries: int = 12, retry_interval: int = 5):
    attempt = 0
    while attempt < max_retries:
        try:
            logger.info(f"Attempting to connect to RabbitMQ at {RABBITMQ_CONNECT_HOST} (Attempt {attempt + 1}/{max_retries})...")
            connection_params = pika.ConnectionParameters(
                host=RABBITMQ_CONNECT_HOST,
                heartbeat=60,
                blocked_connection_timeout=3
            )
            connection = pika.BlockingConnection(connection_params)
            channel = connection.channel()
            channel.queue_declare(queue=constants.RABBIT_QUEUE_BOOKS, durable=True)
            logger.info(f"Queue '{constants.RABBIT_QUEUE_BOOKS}' declared.")
            return connection, channel

        except pika.exceptions.AMQPConnectionError as e:
            attempt += 1
            logger.warning(f"RabbitMQ connection failed: {e}. Retrying in {retry_interval} seconds...")
            time.sleep(retry_interval)

    logger.error("Max retries reached. Could not connect to RabbitMQ.")
    return None, None


def main():
    setup_global_logger(log_file_path=os.getenv("LOG_FILE", "receiver.log"), console=True)
    aggregator = build_aggregator()

    connection, channel = connect()
    if not channel:
        sys.exit(1)

    def book_callback(ch, method, properties, body):
        try:
            data = json.loads(body.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.error(f"Discarding undecodable message: {e}")
            ch.basic_ack(delivery_tag=method.delivery_tag)
            return

        try:
            handle_event(aggregator, data)
        except PyMongoError as e:
            logger.error(f"Goal sync failed, requeueing message: {e}")
            ch.basic_nack(delivery_tag=method.delivery_tag, requeue=True)
            return
        ch.basic_ack(delivery_tag=method.delivery_tag)

    channel.basic_qos(prefetch_count=1)
    channel.basic_consume(queue=constants.RABBIT_QUEUE_BOOKS, on_message_callback=book_callback)

    logger.info(f"Waiting for messages on host {RABBITMQ_CONNECT_HOST}. To exit press CTRL+C")
    try:
        channel.start_consuming()
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    finally:
        if connection and not connection.is_closed:
            logger.info("Closing RabbitMQ connection.")
            connection.close()
        DBClient.get_instance().close()

if __name__ == '__main__':
    main()
