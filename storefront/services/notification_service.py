# storefront/services/notification_service.py
from typing import Any, Dict

from storefront.celery_worker import celery_app
from storefront.services.email_client import EmailClient
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def format_cents(amount: int) -> str:
    return f"${amount / 100:,.2f}"


def build_order_confirmation(order: Dict[str, Any]) -> tuple[str, str]:
    subject = f"Order confirmation #{order['id'][:8]}"
    lines = [
        "Thank you for your purchase!",
        "",
        f"Order: {order['id']}",
        "",
    ]
    for item in order["items"]:
        lines.append(f"- {item['item_title']} x{item['quantity']}: {format_cents(item['price'] * item['quantity'])}")
    lines += [
        "",
        f"Subtotal: {format_cents(order['subtotal'])}",
        f"Tax: {format_cents(order['tax'])}",
        f"Total: {format_cents(order['total'])}",
    ]
    return subject, "\n".join(lines)


class NotificationService:
    """
    Sends notifications through Celery.
    Dispatch only, the caller is responsible for swallowing failures.
    """

    @staticmethod
    def send_order_confirmation(order: Dict[str, Any]) -> None:
        subject, body = build_order_confirmation(order)
        send_email_task.delay(order["user_email"], subject, body)
        logger.info(f"Order confirmation for {order['id']} queued")


@celery_app.task(name="storefront.services.notification_service.send_email_task")
def send_email_task(to: str, subject: str, body: str):
    result = EmailClient().send(to, subject, body)
    logger.info(f"[NOTIFICATION] email '{subject}' sent to {to}")
    return {"to": to, "status": "sent", "id": result.get("id")}
