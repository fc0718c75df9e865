"""Custom signals for the registration app.

Signals:
    registration_paid: Sent when a registration transitions to PAID status.
        Sender: The ``Registration`` class.
        Kwargs:
            registration: The ``Registration`` instance that was paid.
            user: The user who owns the registration (may be ``None``).
"""

from django.dispatch import Signal

registration_paid = Signal()
