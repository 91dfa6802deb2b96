"""Payment capture for paid session registrations.

Only the simulated gateway exists today: it waits ``PAYMENT_SIMULATED_DELAY``
seconds and then reports success, like the registration dialog of the web
client did.
"""

import logging
import time
import uuid

from flask import current_app, has_app_context

from skillbridge.errors import PaymentFailed
from skillbridge.firestore_models import PAYMENT_COMPLETED, PAYMENT_REFUNDED, utcnow

logger = logging.getLogger(__name__)

CURRENCY = 'INR'


class Receipt:

    def __init__(self, reference, amount, status, captured_at):
        self.reference = reference
        self.amount = amount
        self.status = status
        self.captured_at = captured_at

    def to_dict(self):
        return {
            'reference': self.reference,
            'amount': self.amount,
            'currency': CURRENCY,
            'status': self.status,
            'capturedAt': self.captured_at.isoformat() if self.captured_at else None,
        }


class SimulatedGateway:

    def __init__(self, delay=0.0):
        self.delay = delay

    def capture(self, amount, description=''):
        if amount is None or amount <= 0:
            raise PaymentFailed('Nothing to charge for this session.')
        if self.delay:
            time.sleep(self.delay)
        reference = f'sim_{uuid.uuid4().hex[:16]}'
        logger.info('Captured %s %s (%s) as %s', amount, CURRENCY, description, reference)
        return Receipt(reference, amount, PAYMENT_COMPLETED, utcnow())

    def refund(self, receipt):
        logger.info('Refunded %s %s for %s', receipt.amount, CURRENCY, receipt.reference)
        receipt.status = PAYMENT_REFUNDED
        return receipt


_GATEWAYS = {
    'simulated': SimulatedGateway,
}


def get_gateway():
    if not has_app_context():
        return SimulatedGateway()
    name = current_app.config.get('PAYMENT_GATEWAY', 'simulated')
    try:
        gateway_class = _GATEWAYS[name]
    except KeyError:
        raise ValueError(f'Unknown PAYMENT_GATEWAY: {name}')
    return gateway_class(delay=current_app.config.get('PAYMENT_SIMULATED_DELAY', 0.0))
