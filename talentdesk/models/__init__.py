"""
TalentDesk Backend: ORM Models
==============================

Importing this package registers every table with `Base.metadata`, which
Alembic's env.py and the relationship resolver both rely on.
"""

from talentdesk.models.user import PipelineAssignment, User
from talentdesk.models.pipeline import Pipeline, Stage
from talentdesk.models.candidate import Candidate, CandidateStageHistory, CandidateTag, Tag
from talentdesk.models.activity import Attachment, EmailLog, EmailTemplate, Note
from talentdesk.models.audit import AuditLog, MergeLog
from talentdesk.models.imports import ImportBatch, ImportItem
from talentdesk.models.saved_search import SavedSearch

__all__ = [
    "User",
    "PipelineAssignment",
    "Pipeline",
    "Stage",
    "Candidate",
    "CandidateStageHistory",
    "CandidateTag",
    "Tag",
    "Note",
    "Attachment",
    "EmailTemplate",
    "EmailLog",
    "AuditLog",
    "MergeLog",
    "ImportBatch",
    "ImportItem",
    "SavedSearch",
]
