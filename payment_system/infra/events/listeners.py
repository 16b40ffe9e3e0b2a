import logging

from django.conf import settings
from django.utils import timezone

from infrastructure.email import EmailException, EmailMessage
from infrastructure.events import get_event_bus
from payment_system.domain.models import ReconciliationEntry
from payment_system.domain.services.alerts import ALERT_EVENT


logger = logging.getLogger(__name__)


def handle_settlement_alert(event_data):
    """
    Handle settlement.alert event.
    E-mails the operators listed in SETTLEMENT["ALERT_EMAILS"].
    """
    payload = event_data.get("payload", {})
    recipients = list(getattr(settings, "SETTLEMENT", {}).get("ALERT_EMAILS", []))
    if not recipients:
        logger.warning(f"[Payment Listener] No ALERT_EMAILS configured; alert for order {payload.get('order_id')} not mailed")
        return

    from infrastructure.container import container

    message = EmailMessage(
        subject=f"[Settlement alert] {payload.get('reason')} - order {payload.get('order_id')}",
        body=(
            f"Order: {payload.get('order_id')}\n"
            f"Settlement: {payload.get('settlement_id')}\n"
            f"Amount: {payload.get('amount')} {str(payload.get('currency', '')).upper()}\n"
            f"Reason: {payload.get('reason')}\n\n"
            f"{payload.get('detail')}\n\n"
            "The buyer has been charged. Resolve the open reconciliation entry once the seller is paid."
        ),
        to=recipients,
        headers={
            "X-Settlement-Id": str(payload.get("settlement_id", "")),
            "X-Alert-Reason": str(payload.get("reason", "")),
        },
    )
    try:
        container.email().send(message)
        logger.info(f"[Payment Listener] Alert for order {payload.get('order_id')} mailed to {len(recipients)} operators")
    except EmailException as e:
        logger.error(f"[Payment Listener] Failed to mail settlement alert: {e}")


def handle_payout_destination_registered(event_data):
    """
    Handle seller.payout_destination_registered event.
    Makes the seller's queued payouts due now so the next sweep pays them.
    """
    seller_id = event_data.get("payload", {}).get("seller_id")
    if not seller_id:
        return

    updated = ReconciliationEntry.objects.filter(
        status=ReconciliationEntry.STATUS_OPEN,
        kind__in=ReconciliationEntry.PAYOUT_KINDS,
        settlement__order__seller_id=seller_id,
    ).update(next_attempt_at=timezone.now())

    if updated:
        logger.info(f"[Payment Listener] {updated} queued payouts for seller {seller_id} are now due")


def register_payment_listeners():
    event_bus = get_event_bus()
    event_bus.subscribe(ALERT_EVENT, handle_settlement_alert)
    event_bus.subscribe("seller.payout_destination_registered", handle_payout_destination_registered)
    logger.info("Registered payment system listeners")
