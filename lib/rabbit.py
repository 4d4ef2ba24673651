import pika, os, json, logging, constants
from utils.utils import datetime_serializer

logger = logging.getLogger(__name__)

def init_rabbit_mq():
    host = os.getenv("RABBITMQ_HOST", "localhost")
    try:
        connection_params = pika.ConnectionParameters(host=host, blocked_connection_timeout=3)
        connection = pika.BlockingConnection(connection_params)
        channel = connection.channel()

        logger.debug("channel opened sucessfully")
        return channel, connection

    except pika.exceptions.AMQPConnectionError as e:
        logger.warning(f"Failed to connect to RabbitMQ at {host}: {e}")
        return None, None
    except Exception as e:
        logger.warning(f"An unexpected error occurred during RabbitMQ initialization: {e}")
        return None, None


class EventPublisher:
    """
    Publishes book lifecycle events for the receiver. Publishing is
    non-critical: failures are logged and reported through the return value.
    """
    def __init__(self, queue: str = constants.RABBIT_QUEUE_BOOKS):
        self.queue = queue

    def publish(self, action: str, user_id: str, **payload: any) -> bool:
        channel, connection = init_rabbit_mq()
        if channel is None:
            logger.warning(f"Event '{action}' for user '{user_id}' not published: no RabbitMQ channel")
            return False

        try:
            channel.queue_declare(queue=self.queue, durable=True)
            mq_msg_data = {"user_id": user_id, "action": action, **payload}
            channel.basic_publish(
                exchange='',
                routing_key=self.queue,
                body=json.dumps(mq_msg_data, default=datetime_serializer),
                properties=pika.BasicProperties(delivery_mode=pika.DeliveryMode.Persistent),
            )
            return True
        except pika.exceptions.AMQPError as mq_err:
            logger.warning(f"Error publishing to RabbitMQ (non-critical): {mq_err}")
            return False
        finally:
            if connection and connection.is_open:
                connection.close()
