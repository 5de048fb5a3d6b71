"""Report service layer.

Users report the other participant of a conversation they take part in.
Staff work the queue: pending reports first, then newest.
"""

from sqlalchemy import case, select
from sqlalchemy.orm import Session, aliased

from kivendi.db.models import Report, ReportStatus, User
from kivendi.errors import ApiErrorCode, InvalidRequestError, NotFoundError
from kivendi.logging import get_logger
from kivendi.schemas.conversation import (
    ReportCreatedOut,
    ReportCreateRequest,
    ReportOut,
    ReportUpdateRequest,
)
from kivendi.services.blocks import get_participant_conversation
from kivendi.services.users import display_name

logger = get_logger(__name__)

VALID_STATUSES = {s.value for s in ReportStatus}


def _parse_status(status: str) -> str:
    normalized = status.strip().lower()
    if normalized not in VALID_STATUSES:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_REQUEST,
            f"status must be one of: {', '.join(sorted(VALID_STATUSES))}",
        )
    return normalized


def report_from_conversation(
    db: Session, conversation_id: int, reporter_id: int, request: ReportCreateRequest
) -> ReportCreatedOut:
    """File a pending report against the other participant.

    Raises:
        NotFoundError(E_CONVERSATION_NOT_FOUND): Unknown conversation.
        ForbiddenError(E_NOT_PARTICIPANT): Reporter is not a participant.
        InvalidRequestError: Empty reason.
    """
    conversation = get_participant_conversation(db, conversation_id, reporter_id)
    reason = request.reason.strip()
    if not reason:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_REQUEST, "reason is required")

    report = Report(
        reporter_id=reporter_id,
        reported_id=conversation.other_participant(reporter_id),
        conversation_id=conversation.id,
        reason=reason,
        status=ReportStatus.pending.value,
    )
    db.add(report)
    db.commit()

    logger.info(
        "report_created",
        report_id=report.id,
        reporter_id=reporter_id,
        reported_id=report.reported_id,
        conversation_id=conversation.id,
    )
    return ReportCreatedOut(
        id=report.id,
        reported_id=report.reported_id,
        conversation_id=conversation.id,
        status=report.status,
    )


def _to_out(report: Report, reporter: User, reported: User) -> ReportOut:
    return ReportOut(
        id=report.id,
        reporter_id=reporter.id,
        reporter_email=reporter.email,
        reporter_name=display_name(reporter),
        reported_id=reported.id,
        reported_email=reported.email,
        reported_name=display_name(reported),
        conversation_id=report.conversation_id,
        reason=report.reason,
        status=report.status,
        admin_notes=report.admin_notes,
        created_at=report.created_at,
        updated_at=report.updated_at,
    )


def list_reports(db: Session, status: str | None = None) -> list[ReportOut]:
    """Reports with reporter/reported info, pending first then newest."""
    reporter = aliased(User)
    reported = aliased(User)
    stmt = (
        select(Report, reporter, reported)
        .join(reporter, reporter.id == Report.reporter_id)
        .join(reported, reported.id == Report.reported_id)
        .order_by(
            case((Report.status == ReportStatus.pending.value, 0), else_=1),
            Report.created_at.desc(),
            Report.id.desc(),
        )
    )
    if status:
        stmt = stmt.where(Report.status == _parse_status(status))

    return [_to_out(r, rep, red) for r, rep, red in db.execute(stmt).all()]


def update_report(db: Session, report_id: int, request: ReportUpdateRequest) -> ReportOut:
    """Partial update of status and admin notes.

    Raises:
        NotFoundError(E_REPORT_NOT_FOUND): Unknown report.
        InvalidRequestError: Status outside the enum.
    """
    report = db.get(Report, report_id)
    if report is None:
        raise NotFoundError(ApiErrorCode.E_REPORT_NOT_FOUND, "Report not found")

    if request.status is not None:
        report.status = _parse_status(request.status)
    if request.admin_notes is not None:
        report.admin_notes = request.admin_notes or None
    db.commit()

    logger.info("report_updated", report_id=report.id, status=report.status)
    reporter = db.get(User, report.reporter_id)
    reported = db.get(User, report.reported_id)
    return _to_out(report, reporter, reported)
