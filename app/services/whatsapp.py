import logging
from flask import current_app
from twilio.rest import Client


def init_twilio(app):
    sid = app.config.get("TWILIO_ACCOUNT_SID")
    token = app.config.get("TWILIO_AUTH_TOKEN")
    whatsapp_from = app.config.get("TWILIO_WHATSAPP_FROM")
    if not all([sid, token, whatsapp_from]):
        if app.config.get("WHATSAPP_CONFIRMATIONS_ENABLED"):
            logging.warning("Twilio credentials missing; using dummy values")
        sid = sid or "dummy"
        token = token or "dummy"
        whatsapp_from = whatsapp_from or "dummy"
    app.twilio_client = Client(sid, token)
    app.config["TWILIO_WHATSAPP_FROM"] = whatsapp_from


def send_whatsapp_message(to, body):
    """Send ``body`` over WhatsApp and return the Twilio message SID."""
    client = current_app.twilio_client
    whatsapp_from = current_app.config.get("TWILIO_WHATSAPP_FROM")
    message = client.messages.create(
        from_=whatsapp_from,
        to=f"whatsapp:{to}",
        body=body,
    )
    logging.info("[WhatsApp] message sent. SID: %s", message.sid)
    return message.sid
