#import wszystkich modeli zeby SQLAlchemy je zarejestrowal w base metadata

from app.data.models.checkout_attempt import CheckoutAttemptModel

__all__ = ["CheckoutAttemptModel"]
