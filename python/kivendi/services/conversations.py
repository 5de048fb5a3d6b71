"""Conversation service layer.

A conversation joins an ad's owner (seller, fixed at creation) and one
other user (buyer). At most one conversation exists per ad and unordered
participant pair: lookups match both orientations, and a concurrent
create that loses the unique-constraint race returns the winner's row.

Blocks are global. A blocked pair cannot open a conversation, and its
existing conversations are hidden from the list and the unread counter.
History of an already-open conversation stays readable to participants.
"""

from sqlalchemy import and_, exists, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased

from kivendi.db.models import Ad, Conversation, Message, MessageType, UserBlock
from kivendi.errors import ApiErrorCode, ForbiddenError, InvalidRequestError, NotFoundError
from kivendi.logging import get_logger
from kivendi.schemas.conversation import (
    ConversationSummaryOut,
    MarkReadOut,
    MessageOut,
    OpenConversationOut,
)
from kivendi.services.blocks import get_participant_conversation, is_pair_blocked
from kivendi.services.notifications import format_amount
from kivendi.services.users import display_name, ensure_can_transact, get_user, load_users

logger = get_logger(__name__)


# =============================================================================
# Helper Functions
# =============================================================================


def _pair_not_blocked():
    """Correlated condition: no block row between the conversation's participants."""
    return ~exists().where(
        or_(
            and_(
                UserBlock.blocker_id == Conversation.seller_id,
                UserBlock.blocked_id == Conversation.buyer_id,
            ),
            and_(
                UserBlock.blocker_id == Conversation.buyer_id,
                UserBlock.blocked_id == Conversation.seller_id,
            ),
        )
    )


def _visible_to(user_id: int):
    return and_(
        or_(Conversation.seller_id == user_id, Conversation.buyer_id == user_id),
        _pair_not_blocked(),
    )


def find_conversation(db: Session, ad_id: int, user_a: int, user_b: int) -> Conversation | None:
    """Conversation on ad_id between the unordered pair {user_a, user_b}."""
    return db.scalars(
        select(Conversation)
        .where(
            Conversation.ad_id == ad_id,
            or_(
                and_(Conversation.seller_id == user_a, Conversation.buyer_id == user_b),
                and_(Conversation.seller_id == user_b, Conversation.buyer_id == user_a),
            ),
        )
        .order_by(Conversation.id)
        .limit(1)
    ).first()


def message_preview(message_type: str, text: str | None, offer_amount: float | None) -> str | None:
    """Conversation-list preview of a message."""
    if message_type == MessageType.image.value:
        return "Image partagée"
    if message_type == MessageType.offer.value:
        return f"Offre: {format_amount(offer_amount)} FCFA"
    return text


# =============================================================================
# Service Functions
# =============================================================================


def open_conversation(db: Session, ad_id: int, buyer_id: int) -> OpenConversationOut:
    """Return the conversation between the ad owner and buyer, creating it if needed.

    Raises:
        NotFoundError(E_AD_NOT_FOUND): Unknown ad.
        InvalidRequestError(E_SELF_CHAT): Buyer owns the ad.
        ForbiddenError(E_ACCOUNT_BLOCKED | E_ACCOUNT_UNVERIFIED): Buyer cannot transact.
        ForbiddenError(E_BLOCKED): A block exists in either direction.
    """
    ad = db.get(Ad, ad_id)
    if ad is None:
        raise NotFoundError(ApiErrorCode.E_AD_NOT_FOUND, "Ad not found")

    seller_id = ad.user_id
    if buyer_id == seller_id:
        raise InvalidRequestError(ApiErrorCode.E_SELF_CHAT, "You cannot chat about your own ad")

    ensure_can_transact(get_user(db, buyer_id))

    if is_pair_blocked(db, buyer_id, seller_id):
        raise ForbiddenError(ApiErrorCode.E_BLOCKED, "This conversation is blocked")

    existing = find_conversation(db, ad_id, seller_id, buyer_id)
    if existing is not None:
        return OpenConversationOut(conversation_id=existing.id, created=False)

    conversation = Conversation(ad_id=ad_id, seller_id=seller_id, buyer_id=buyer_id)
    db.add(conversation)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = find_conversation(db, ad_id, seller_id, buyer_id)
        if existing is None:
            raise
        return OpenConversationOut(conversation_id=existing.id, created=False)

    logger.info(
        "conversation_created",
        conversation_id=conversation.id,
        ad_id=ad_id,
        seller_id=seller_id,
        buyer_id=buyer_id,
    )
    return OpenConversationOut(conversation_id=conversation.id, created=True)


def get_history(db: Session, conversation_id: int, requester_id: int) -> list[MessageOut]:
    """All messages, oldest first.

    Raises:
        NotFoundError(E_CONVERSATION_NOT_FOUND): Unknown conversation.
        ForbiddenError(E_NOT_PARTICIPANT): Requester is not a participant.
    """
    get_participant_conversation(db, conversation_id, requester_id)
    messages = db.scalars(
        select(Message)
        .where(Message.conversation_id == conversation_id)
        .order_by(Message.created_at.asc(), Message.id.asc())
    ).all()
    return [MessageOut.model_validate(m) for m in messages]


def mark_read(db: Session, conversation_id: int, requester_id: int) -> MarkReadOut:
    """Mark every message not sent by the requester as read. Idempotent."""
    get_participant_conversation(db, conversation_id, requester_id)
    result = db.execute(
        update(Message)
        .where(
            Message.conversation_id == conversation_id,
            Message.sender_id != requester_id,
            Message.is_read.is_(False),
        )
        .values(is_read=True)
    )
    db.commit()
    return MarkReadOut(conversation_id=conversation_id, marked=result.rowcount or 0)


def list_conversations(db: Session, user_id: int) -> list[ConversationSummaryOut]:
    """The user's conversations, blocked pairs excluded, most recent activity first."""
    conversations = db.scalars(select(Conversation).where(_visible_to(user_id))).all()
    if not conversations:
        return []

    ids = [c.id for c in conversations]

    ranked = (
        select(
            Message,
            func.row_number()
            .over(
                partition_by=Message.conversation_id,
                order_by=(Message.created_at.desc(), Message.id.desc()),
            )
            .label("rn"),
        )
        .where(Message.conversation_id.in_(ids))
        .subquery()
    )
    last_message = aliased(Message, ranked)
    last_by_conversation = {
        m.conversation_id: m
        for m in db.scalars(select(last_message).where(ranked.c.rn == 1)).all()
    }

    unread_by_conversation = dict(
        db.execute(
            select(Message.conversation_id, func.count())
            .where(
                Message.conversation_id.in_(ids),
                Message.sender_id != user_id,
                Message.is_read.is_(False),
            )
            .group_by(Message.conversation_id)
        ).all()
    )

    ads = {
        ad.id: ad
        for ad in db.scalars(select(Ad).where(Ad.id.in_({c.ad_id for c in conversations}))).all()
    }
    users = load_users(db, (c.other_participant(user_id) for c in conversations))

    summaries = []
    for conversation in conversations:
        other_id = conversation.other_participant(user_id)
        other = users.get(other_id)
        ad = ads.get(conversation.ad_id)
        last = last_by_conversation.get(conversation.id)
        summaries.append(
            ConversationSummaryOut(
                conversation_id=conversation.id,
                ad_id=conversation.ad_id,
                ad_title=ad.title if ad else "",
                ad_image_url=ad.first_image if ad else None,
                other_user_id=other_id,
                other_user_name=display_name(other) if other else "",
                other_user_avatar_url=other.avatar_url if other else None,
                last_message_text=(
                    message_preview(last.type, last.text, last.offer_amount) if last else None
                ),
                last_message_type=last.type if last else None,
                last_message_offer_amount=last.offer_amount if last else None,
                last_message_timestamp=last.created_at if last else None,
                unread_messages_count=unread_by_conversation.get(conversation.id, 0),
                created_at=conversation.created_at,
            )
        )

    summaries.sort(
        key=lambda s: (
            max(s.last_message_timestamp or s.created_at, s.created_at),
            s.conversation_id,
        ),
        reverse=True,
    )
    return summaries


def total_unread(db: Session, user_id: int) -> int:
    """Unread messages addressed to the user across non-blocked conversations."""
    return (
        db.scalar(
            select(func.count())
            .select_from(Message)
            .join(Conversation, Conversation.id == Message.conversation_id)
            .where(
                _visible_to(user_id),
                Message.sender_id != user_id,
                Message.is_read.is_(False),
            )
        )
        or 0
    )
