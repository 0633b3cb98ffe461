# Overview: Fire-and-forget change notifications emitted after a ledger transaction commits.

"""
Change notification sink.

Listeners are registered per Flask app (``subscribe``) and called with
``(business_id, event, payload)``. Events: itemCreated, itemUpdated,
itemDeleted, operationCreated, operationUndone, logCreated, logUndone.

notify() is only ever called after db.session.commit(); a listener that raises
is logged and skipped. It can never fail or roll back the ledger write.
"""

from __future__ import annotations

from flask import current_app

_EXTENSION_KEY = "stockledger.listeners"

EVENTS = (
    "itemCreated",
    "itemUpdated",
    "itemDeleted",
    "operationCreated",
    "operationUndone",
    "logCreated",
    "logUndone",
)


def _listeners(app=None) -> list:
    app = app or current_app
    return app.extensions.setdefault(_EXTENSION_KEY, [])


def subscribe(listener, app=None):
    """Register listener(business_id, event, payload); returns it so it can be used as a decorator."""
    _listeners(app).append(listener)
    return listener


def unsubscribe(listener, app=None) -> None:
    listeners = _listeners(app)
    if listener in listeners:
        listeners.remove(listener)


def notify(business_id: int, event: str, payload) -> None:
    for listener in list(_listeners()):
        try:
            listener(business_id, event, payload)
        except Exception:
            current_app.logger.exception(
                "Notification listener failed for %s (business %s)", event, business_id
            )


def notify_many(business_id: int, events: list[tuple[str, object]]) -> None:
    for event, payload in events:
        notify(business_id, event, payload)
