import logging
from celery import shared_task
import celery_app  # noqa: F401  configures the default Celery app for .delay()
from flask import current_app
from twilio.base.exceptions import TwilioException

from app.utils import transactional
from app.services.order_admin import record_confirmation_ref
from app.services.whatsapp import send_whatsapp_message

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def send_order_confirmation_task(self, order_id: int, to: str, body: str):
    """Send the order summary over WhatsApp and store the message SID on the order."""
    from app import create_app
    app = current_app._get_current_object() if current_app else create_app()
    with app.app_context():
        try:
            sid = send_whatsapp_message(to, body)
        except TwilioException as exc:
            logger.error("WhatsApp confirmation for order %s failed: %s", order_id, exc)
            raise self.retry(exc=exc)
        with transactional("Failed to record confirmation message"):
            record_confirmation_ref(order_id, sid)
        return sid
