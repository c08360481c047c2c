import logging

from servicebook.models.booking import Booking
from servicebook.models.enums import BookingStatus
from servicebook.models.message import Message
from servicebook.utils.exceptions import Forbidden, InvalidTransition, NotFound, ValidationError
from servicebook.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 2000
PUSH_PREVIEW_LENGTH = 100


def preview(content, limit=PUSH_PREVIEW_LENGTH):
    return content if len(content) <= limit else content[:limit - 3] + "..."


class ChatService:
    """In-booking chat between the customer and the assigned provider."""

    def __init__(self, session, push):
        self.session = session
        self.push = push

    def _load_for_party(self, booking_id, user_id):
        booking = self.session.get(Booking, booking_id)
        if not booking:
            raise NotFound("Booking not found")
        if not booking.is_party(user_id):
            raise Forbidden("Access denied")
        return booking

    def get_messages(self, booking_id, user_id):
        self._load_for_party(booking_id, user_id)
        messages = (
            self.session.query(Message)
            .filter_by(booking_id=booking_id)
            .order_by(Message.created_at.asc(), Message.id.asc())
            .all()
        )
        return [(m, m.sender_id == user_id) for m in messages]

    def send_message(self, booking_id, sender_id, content):
        content = (content or "").strip()
        if not content:
            raise ValidationError("Message cannot be empty", {"content": ["Message cannot be empty"]})
        if len(content) > MAX_MESSAGE_LENGTH:
            raise ValidationError("Message too long", {"content": [f"At most {MAX_MESSAGE_LENGTH} characters"]})

        booking = self._load_for_party(booking_id, sender_id)
        if booking.status not in BookingStatus.ACTIVE:
            raise InvalidTransition(booking.status, booking.status,
                                    message="Chat is only available for active bookings")

        msg = Message(booking_id=booking_id, sender_id=sender_id, content=content, created_at=utcnow())
        self.session.add(msg)
        self.session.commit()

        is_customer = sender_id == booking.customer_id
        recipient_id = booking.provider_user_id if is_customer else booking.customer_id
        if is_customer:
            sender_name = booking.customer.full_name or "Customer"
        else:
            sender_name = booking.provider.display_name or "Provider"

        if recipient_id:
            self.push.send_to_user(
                recipient_id,
                f"New message from {sender_name}",
                preview(content),
                {"type": "chat_message", "booking_id": booking_id, "sender_id": sender_id},
            )
        return msg

    def mark_read(self, booking_id, user_id):
        self._load_for_party(booking_id, user_id)
        updated = (
            self.session.query(Message)
            .filter(Message.booking_id == booking_id, Message.sender_id != user_id, Message.is_read.is_(False))
            .update({"is_read": True, "read_at": utcnow()}, synchronize_session=False)
        )
        self.session.commit()
        return updated

    def unread_count(self, booking_id, user_id):
        self._load_for_party(booking_id, user_id)
        return (
            self.session.query(Message)
            .filter(Message.booking_id == booking_id, Message.sender_id != user_id, Message.is_read.is_(False))
            .count()
        )
