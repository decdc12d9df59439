"""
TalentDesk Backend: Email Templates and Candidate Emails
========================================================

What:  Reusable email templates with {{placeholder}} variables, and sending
       one-off (optionally templated) emails to a candidate.
How:   Templates are plain rows; variables are the union of what the caller
       declares and the placeholders found in subject and body. Sending
       renders the placeholders from the candidate, writes a PENDING
       EmailLog, hands the message to EmailService and records the outcome.

Send flow:
    ┌──────────────┐   ┌──────────────┐   ┌──────────────┐
    │ Render       │──▶│ EmailLog     │──▶│ EmailService │
    │ placeholders │   │ PENDING      │   │ (retry + CB) │
    └──────────────┘   └──────┬───────┘   └──────┬───────┘
                              │ commit           │
                              ▼                  ▼
                        SENT + audit       FAILED, committed, then
                                           502/503 with email_log_id

The log row is committed before the provider call and again after a
failure, so a failed delivery stays visible even though the request
itself ends in an error response.
"""

import logging
import re
import uuid
from datetime import datetime, timezone
from html import escape
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from talentdesk.exceptions import (
    CircuitBreakerOpenError,
    EmailDeliveryError,
    NotFoundError,
    ValidationError,
)
from talentdesk.models import Candidate, EmailLog, EmailTemplate, User
from talentdesk.schemas.activity import (
    EmailListResponse,
    EmailLogResponse,
    SendEmailRequest,
    SendEmailResponse,
    TemplateCreateRequest,
    TemplateListResponse,
    TemplateResponse,
    TemplateUpdateRequest,
)
from talentdesk.services.audit_service import audit_service
from talentdesk.services.candidate_service import load_accessible_candidate
from talentdesk.services.email_service import EmailService, OutgoingEmail, email_service

logger = logging.getLogger(__name__)

TEMPLATE_NOT_FOUND = "Template not found"
PLACEHOLDER_RE = re.compile(r"\{\{(\w+)\}\}")


# ── Placeholders ──────────────────────────────────────────────────────────


def extract_variables(*texts: str) -> List[str]:
    """Placeholder names in first-seen order, without repeats."""
    found: List[str] = []
    for text in texts:
        for name in PLACEHOLDER_RE.findall(text or ""):
            if name not in found:
                found.append(name)
    return found


def merge_variables(declared: Iterable[str], subject: str, body: str) -> List[str]:
    return list(dict.fromkeys([*declared, *extract_variables(subject, body)]))


def render_template(text: str, values: Dict[str, str]) -> str:
    """
    Replaces {{name}} with values[name]. Unknown names and empty values
    leave the placeholder untouched so a missing field is visible in the
    sent message rather than silently blank.
    """
    return PLACEHOLDER_RE.sub(lambda m: values.get(m.group(1)) or m.group(0), text)


def candidate_variables(candidate: Candidate, to_email: str) -> Dict[str, str]:
    """
    Values available to templates. The camelCase spellings are accepted
    too, as older templates were written with them.
    """
    first, _, rest = candidate.full_name.strip().partition(" ")
    values = {
        "full_name": candidate.full_name,
        "first_name": first,
        "last_name": rest.strip(),
        "email": to_email,
        "pipeline_name": candidate.pipeline.name,
        "stage_name": candidate.stage.name,
    }
    values.update(
        fullName=values["full_name"],
        firstName=values["first_name"],
        lastName=values["last_name"],
        pipelineName=values["pipeline_name"],
        stageName=values["stage_name"],
    )
    return values


def text_to_html(text: str) -> str:
    return escape(text).replace("\n", "<br>")


# ── Templates ─────────────────────────────────────────────────────────────


class TemplateService:
    async def load_template(self, db: AsyncSession, template_id: uuid.UUID) -> EmailTemplate:
        result = await db.execute(
            select(EmailTemplate)
            .options(selectinload(EmailTemplate.created_by))
            .where(EmailTemplate.id == template_id, EmailTemplate.deleted_at.is_(None))
        )
        template = result.scalar_one_or_none()
        if template is None:
            raise NotFoundError("template", str(template_id), message=TEMPLATE_NOT_FOUND)
        return template

    async def list_templates(self, db: AsyncSession) -> TemplateListResponse:
        result = await db.execute(
            select(EmailTemplate)
            .options(selectinload(EmailTemplate.created_by))
            .where(EmailTemplate.deleted_at.is_(None))
            .order_by(EmailTemplate.created_at.desc())
        )
        return TemplateListResponse(
            templates=[TemplateResponse.model_validate(t) for t in result.scalars().all()]
        )

    async def create_template(
        self,
        db: AsyncSession,
        actor: User,
        body: TemplateCreateRequest,
    ) -> TemplateResponse:
        template = EmailTemplate(
            name=body.name,
            subject=body.subject,
            body=body.body,
            variables=merge_variables(body.variables, body.subject, body.body),
            created_by=actor,
        )
        db.add(template)
        await db.flush()

        audit_service.record(
            db,
            user_id=actor.id,
            action="TEMPLATE_CREATED",
            entity_type="EMAIL_TEMPLATE",
            entity_id=template.id,
            details={"name": template.name},
        )
        return TemplateResponse.model_validate(template)

    async def get_template(self, db: AsyncSession, template_id: uuid.UUID) -> TemplateResponse:
        return TemplateResponse.model_validate(await self.load_template(db, template_id))

    async def update_template(
        self,
        db: AsyncSession,
        actor: User,
        template_id: uuid.UUID,
        body: TemplateUpdateRequest,
    ) -> TemplateResponse:
        template = await self.load_template(db, template_id)
        changes = sorted(k for k in body.model_fields_set if getattr(body, k) is not None)

        if body.name is not None:
            template.name = body.name
        if body.subject is not None:
            template.subject = body.subject
        if body.body is not None:
            template.body = body.body
        if body.body is not None or body.subject is not None or body.variables is not None:
            declared = body.variables if body.variables is not None else template.variables
            template.variables = merge_variables(declared, template.subject, template.body)

        await db.flush()
        audit_service.record(
            db,
            user_id=actor.id,
            action="TEMPLATE_UPDATED",
            entity_type="EMAIL_TEMPLATE",
            entity_id=template.id,
            details={"changes": changes},
        )
        return TemplateResponse.model_validate(template)

    async def delete_template(self, db: AsyncSession, actor: User, template_id: uuid.UUID) -> None:
        template = await self.load_template(db, template_id)
        template.deleted_at = datetime.now(timezone.utc)
        await db.flush()
        audit_service.record(
            db,
            user_id=actor.id,
            action="TEMPLATE_DELETED",
            entity_type="EMAIL_TEMPLATE",
            entity_id=template.id,
            details={"name": template.name},
        )


# ── Candidate emails ──────────────────────────────────────────────────────


class CandidateEmailService:
    def __init__(self, sender: Optional[EmailService] = None):
        self.sender = sender or email_service

    async def _load_log(self, db: AsyncSession, log_id: uuid.UUID) -> EmailLog:
        result = await db.execute(
            select(EmailLog)
            .options(selectinload(EmailLog.sent_by))
            .where(EmailLog.id == log_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def list_emails(self, db: AsyncSession, actor: User, candidate_id: uuid.UUID) -> EmailListResponse:
        candidate = await load_accessible_candidate(db, actor, candidate_id)
        result = await db.execute(
            select(EmailLog)
            .options(selectinload(EmailLog.sent_by))
            .where(EmailLog.candidate_id == candidate.id)
            .order_by(EmailLog.sent_at.desc())
        )
        return EmailListResponse(emails=[EmailLogResponse.model_validate(e) for e in result.scalars().all()])

    async def send(
        self,
        db: AsyncSession,
        actor: User,
        candidate_id: uuid.UUID,
        body: SendEmailRequest,
    ) -> SendEmailResponse:
        """
        Renders and sends one email to a candidate.

        Raises:
            ValidationError: no recipient (no to_email and no candidate email)
            NotFoundError: candidate or referenced template missing
            EmailDeliveryError / CircuitBreakerOpenError: delivery failed;
                context carries email_log_id of the FAILED log row
        """
        candidate = await load_accessible_candidate(db, actor, candidate_id)

        to_email = body.to_email or candidate.email
        if not to_email:
            raise ValidationError(message="Candidate has no email address", field="to_email")
        if body.template_id is not None:
            await template_service.load_template(db, body.template_id)

        values = candidate_variables(candidate, to_email)
        subject = render_template(body.subject, values)
        text = render_template(body.body, values)

        log = EmailLog(
            candidate_id=candidate.id,
            template_id=body.template_id,
            sent_by_user_id=actor.id,
            to_email=to_email,
            subject=subject,
            body=text,
            status="PENDING",
        )
        db.add(log)
        await db.flush()
        log_id = log.id
        await db.commit()

        try:
            message_id = await self.sender.send(
                OutgoingEmail(to=to_email, subject=subject, text=text, html=text_to_html(text))
            )
        except (EmailDeliveryError, CircuitBreakerOpenError) as e:
            log.status = "FAILED"
            log.error_message = e.message
            await db.commit()
            logger.warning("Email %s to candidate %s failed: %s", log_id, candidate_id, e.message)
            e.context["email_log_id"] = str(log_id)
            raise

        log.status = "SENT"
        log.provider_message_id = message_id
        audit_service.record(
            db,
            user_id=actor.id,
            action="EMAIL_SENT",
            entity_type="CANDIDATE",
            entity_id=candidate.id,
            details={
                "email_log_id": log_id,
                "to_email": to_email,
                "subject": subject,
                "template_id": body.template_id,
            },
        )
        await db.flush()
        logger.info("Email %s sent to candidate %s", log_id, candidate_id)
        return SendEmailResponse(email=EmailLogResponse.model_validate(await self._load_log(db, log_id)))


template_service = TemplateService()
candidate_email_service = CandidateEmailService()
