"""State-change events a notification layer can subscribe to.

Every signal is sent only after the transaction that caused it has committed,
with ``alert`` (and ``response`` or ``donor`` where relevant) as keyword
arguments.
"""

from django.dispatch import Signal

alert_created = Signal()
alert_fulfilled = Signal()
alert_expired = Signal()
response_selected = Signal()
# Sent when the requester picks a donor without a response (alert, donor).
donor_selected = Signal()
