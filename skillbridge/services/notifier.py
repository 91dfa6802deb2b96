"""Outcome channel.

Workflows publish what happened (``session.approved``, ``registration.created``,
``proposal.final_approved`` ...) and subscribers decide how to deliver it.
The Socket.IO broadcaster in ``skillbridge.events`` is the production
subscriber; tests subscribe a list.
"""

import logging

logger = logging.getLogger(__name__)


class OutcomeChannel:

    def __init__(self):
        self._subscribers = []

    def subscribe(self, callback):
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def clear(self):
        self._subscribers = []

    def publish(self, event, payload, rooms=()):
        logger.debug('Outcome %s for rooms %s', event, rooms)
        for callback in list(self._subscribers):
            try:
                callback(event, payload, tuple(rooms))
            except Exception:
                # Delivery problems never undo a committed transition
                logger.exception('Outcome subscriber failed for %s', event)


outcomes = OutcomeChannel()


def publish(event, payload, rooms=()):
    outcomes.publish(event, payload, rooms)
