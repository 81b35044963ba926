from contextlib import contextmanager
import logging
from models import db
from app.services.errors import CheckoutError

@contextmanager
def transactional(message="DB transaction failed"):
    """Context manager to wrap a database transaction.

    Commits on a clean exit; rolls back and re-raises on any exception.
    Expected checkout rejections are logged without a traceback.
    """
    try:
        yield
        db.session.commit()
    except CheckoutError as e:
        db.session.rollback()
        logging.info(f"{message}: %s", e)
        raise
    except Exception as e:
        logging.error(f"{message}: %s", e, exc_info=True)
        db.session.rollback()
        raise
