"""
TalentDesk Backend: Saved Searches
==================================

Per-user named filter sets for /api/search. Each user has at most one
default search. A search owned by someone else behaves exactly like a
missing one (404), so ids never leak between users.
"""

import logging
import uuid

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from talentdesk.exceptions import NotFoundError
from talentdesk.models import SavedSearch, User
from talentdesk.schemas.search import (
    SavedSearchCreateRequest,
    SavedSearchListResponse,
    SavedSearchResponse,
    SavedSearchUpdateRequest,
)
from talentdesk.services.search_service import parse_search_params

logger = logging.getLogger(__name__)

SAVED_SEARCH_NOT_FOUND = "Saved search not found"


class SavedSearchService:
    async def _load_own(self, db: AsyncSession, user: User, search_id: uuid.UUID) -> SavedSearch:
        result = await db.execute(
            select(SavedSearch).where(SavedSearch.id == search_id, SavedSearch.user_id == user.id)
        )
        saved = result.scalar_one_or_none()
        if saved is None:
            raise NotFoundError("saved search", str(search_id), message=SAVED_SEARCH_NOT_FOUND)
        return saved

    async def _clear_defaults(self, db: AsyncSession, user: User, keep_id=None) -> None:
        stmt = update(SavedSearch).where(SavedSearch.user_id == user.id, SavedSearch.is_default.is_(True))
        if keep_id is not None:
            stmt = stmt.where(SavedSearch.id != keep_id)
        await db.execute(stmt.values(is_default=False))

    async def list_searches(self, db: AsyncSession, user: User) -> SavedSearchListResponse:
        result = await db.execute(
            select(SavedSearch)
            .where(SavedSearch.user_id == user.id)
            .order_by(SavedSearch.is_default.desc(), SavedSearch.updated_at.desc())
        )
        return SavedSearchListResponse(
            saved_searches=[SavedSearchResponse.model_validate(s) for s in result.scalars().all()]
        )

    async def create_search(
        self,
        db: AsyncSession,
        user: User,
        body: SavedSearchCreateRequest,
    ) -> SavedSearchResponse:
        # Reject filters the search endpoint could not run
        parse_search_params(body.filters)

        if body.is_default:
            await self._clear_defaults(db, user)
        saved = SavedSearch(
            user_id=user.id,
            name=body.name,
            filters=body.filters,
            is_default=body.is_default,
        )
        db.add(saved)
        await db.flush()
        logger.info("Saved search %s created for user %s", saved.id, user.id)
        return SavedSearchResponse.model_validate(saved)

    async def get_search(self, db: AsyncSession, user: User, search_id: uuid.UUID) -> SavedSearchResponse:
        return SavedSearchResponse.model_validate(await self._load_own(db, user, search_id))

    async def update_search(
        self,
        db: AsyncSession,
        user: User,
        search_id: uuid.UUID,
        body: SavedSearchUpdateRequest,
    ) -> SavedSearchResponse:
        saved = await self._load_own(db, user, search_id)

        if body.is_default is True:
            await self._clear_defaults(db, user, keep_id=saved.id)
        if body.name is not None:
            saved.name = body.name
        if body.filters is not None:
            parse_search_params(body.filters)
            saved.filters = body.filters
        if body.is_default is not None:
            saved.is_default = body.is_default
        await db.flush()
        return SavedSearchResponse.model_validate(saved)

    async def delete_search(self, db: AsyncSession, user: User, search_id: uuid.UUID) -> None:
        saved = await self._load_own(db, user, search_id)
        await db.delete(saved)
        await db.flush()


saved_search_service = SavedSearchService()
