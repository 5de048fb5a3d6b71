"""Block service layer.

Blocks are global and directed: the row (blocker, blocked) belongs to the
blocker. A pair {a, b} counts as blocked while either direction exists, so
unblocking only lifts the isolation if the other side has not blocked too.

Blocking never deletes conversations or messages. Conversation-scoped
endpoints resolve the "other participant" and delegate to the user-level
operations.
"""

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from kivendi.db.models import Conversation, User, UserBlock
from kivendi.db.upsert import conflict_insert
from kivendi.errors import ApiErrorCode, ForbiddenError, InvalidRequestError, NotFoundError
from kivendi.logging import get_logger
from kivendi.schemas.conversation import BlockActionOut, BlockedUserOut, BlockStatusOut
from kivendi.services.users import display_name, get_user

logger = get_logger(__name__)


def pair_blocked_clause(a, b):
    """SQL condition: a block row exists in either direction between columns/values a and b."""
    return or_(
        and_(UserBlock.blocker_id == a, UserBlock.blocked_id == b),
        and_(UserBlock.blocker_id == b, UserBlock.blocked_id == a),
    )


def is_pair_blocked(db: Session, user_a: int, user_b: int) -> bool:
    row = db.execute(
        select(UserBlock.blocker_id).where(pair_blocked_clause(user_a, user_b)).limit(1)
    )
    return row.first() is not None


def has_blocked(db: Session, blocker_id: int, blocked_id: int) -> bool:
    return db.get(UserBlock, (blocker_id, blocked_id)) is not None


def block_user(db: Session, blocker_id: int, blocked_id: int) -> BlockActionOut:
    """Insert (blocker, blocked) idempotently.

    Raises:
        InvalidRequestError(E_SELF_BLOCK): blocker == blocked.
        NotFoundError(E_USER_NOT_FOUND): Unknown blocked user.
    """
    if blocker_id == blocked_id:
        raise InvalidRequestError(ApiErrorCode.E_SELF_BLOCK, "You cannot block yourself")
    get_user(db, blocked_id)

    stmt = (
        conflict_insert(db, UserBlock)
        .values(blocker_id=blocker_id, blocked_id=blocked_id)
        .on_conflict_do_nothing(index_elements=[UserBlock.blocker_id, UserBlock.blocked_id])
    )
    result = db.execute(stmt)
    db.commit()

    if not result.rowcount:
        return BlockActionOut(status="already_blocked", blocked_user_id=blocked_id)

    logger.info("user_blocked", blocker_id=blocker_id, blocked_id=blocked_id)
    return BlockActionOut(status="blocked", blocked_user_id=blocked_id)


def unblock_user(db: Session, blocker_id: int, blocked_id: int) -> BlockActionOut:
    """Remove only the directed row (blocker, blocked).

    Raises:
        NotFoundError(E_BLOCK_NOT_FOUND): The viewer has not blocked this user.
    """
    row = db.get(UserBlock, (blocker_id, blocked_id))
    if row is None:
        raise NotFoundError(ApiErrorCode.E_BLOCK_NOT_FOUND, "Block not found")
    db.delete(row)
    db.commit()
    logger.info("user_unblocked", blocker_id=blocker_id, blocked_id=blocked_id)
    return BlockActionOut(status="unblocked", blocked_user_id=blocked_id)


def list_blocked_users(db: Session, blocker_id: int) -> list[BlockedUserOut]:
    """Users the viewer blocked, newest block first."""
    rows = db.execute(
        select(User, UserBlock.created_at)
        .join(UserBlock, UserBlock.blocked_id == User.id)
        .where(UserBlock.blocker_id == blocker_id)
        .order_by(UserBlock.created_at.desc(), User.id.desc())
    ).all()
    return [
        BlockedUserOut(
            id=user.id,
            name=display_name(user),
            avatar_url=user.avatar_url,
            blocked_at=blocked_at,
        )
        for user, blocked_at in rows
    ]


# =============================================================================
# Conversation-scoped operations
# =============================================================================


def get_participant_conversation(db: Session, conversation_id: int, user_id: int) -> Conversation:
    """Load a conversation the user takes part in.

    Raises:
        NotFoundError(E_CONVERSATION_NOT_FOUND): Unknown conversation.
        ForbiddenError(E_NOT_PARTICIPANT): User is not seller or buyer.
    """
    conversation = db.get(Conversation, conversation_id)
    if conversation is None:
        raise NotFoundError(ApiErrorCode.E_CONVERSATION_NOT_FOUND, "Conversation not found")
    if not conversation.is_participant(user_id):
        raise ForbiddenError(
            ApiErrorCode.E_NOT_PARTICIPANT, "You are not a participant of this conversation"
        )
    return conversation


def block_in_conversation(db: Session, conversation_id: int, viewer_id: int) -> BlockActionOut:
    conversation = get_participant_conversation(db, conversation_id, viewer_id)
    return block_user(db, viewer_id, conversation.other_participant(viewer_id))


def unblock_in_conversation(db: Session, conversation_id: int, viewer_id: int) -> BlockActionOut:
    conversation = get_participant_conversation(db, conversation_id, viewer_id)
    return unblock_user(db, viewer_id, conversation.other_participant(viewer_id))


def block_status(db: Session, conversation_id: int, viewer_id: int) -> BlockStatusOut:
    conversation = get_participant_conversation(db, conversation_id, viewer_id)
    other_id = conversation.other_participant(viewer_id)
    return BlockStatusOut(
        conversation_id=conversation.id,
        is_blocked=is_pair_blocked(db, viewer_id, other_id),
        blocked_by_me=has_blocked(db, viewer_id, other_id),
    )
