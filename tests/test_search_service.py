"""
TalentDesk Backend: Search Unit Tests
=====================================

What:  Query parameter normalisation and the SQL conditions built from it.
"""

import uuid
from datetime import date

import pytest
from starlette.datastructures import QueryParams

from talentdesk.exceptions import ValidationError
from talentdesk.schemas.search import SearchFilters
from talentdesk.services.search_service import build_search_conditions, parse_search_params, resolve_sort


class TestParseSearchParams:
    def test_defaults(self):
        filters = parse_search_params({})
        assert filters.page == 1
        assert filters.page_size == 25
        assert filters.status == "all"
        assert filters.tag_ids == []

    def test_query_string_values(self):
        pipeline_id = uuid.uuid4()
        params = QueryParams(f"q=jane&pipeline_id={pipeline_id}&status=active&date_from=2024-01-31&page=2")

        filters = parse_search_params(params)

        assert filters.q == "jane"
        assert filters.pipeline_id == pipeline_id
        assert filters.status == "active"
        assert filters.date_from == date(2024, 1, 31)
        assert filters.page == 2

    def test_repeated_and_plural_tag_params_combined(self):
        a, b, c = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
        filters = parse_search_params(QueryParams(f"tag_id={a}&tag_id={b}&tag_ids={c}"))
        assert filters.tag_ids == [a, b, c]

    def test_saved_search_dict_with_list(self):
        a = uuid.uuid4()
        filters = parse_search_params({"tag_ids": [str(a)], "has_email": True})
        assert filters.tag_ids == [a]
        assert filters.has_email is True

    def test_last_flag_wins(self):
        filters = parse_search_params(QueryParams("has_email=true&has_email=false"))
        assert filters.has_email is False

    def test_unrecognised_flag_ignored(self):
        assert parse_search_params({"has_phone": "maybe"}).has_phone is None

    def test_empty_strings_are_absent(self):
        filters = parse_search_params({"q": "", "pipeline_id": "", "source": ""})
        assert filters.q is None
        assert filters.pipeline_id is None

    def test_page_size_clamped(self):
        assert parse_search_params({"page_size": "500"}).page_size == 100

    @pytest.mark.parametrize(
        "params",
        [
            {"pipeline_id": "not-a-uuid"},
            {"status": "archived"},
            {"date_to": "31/01/2024"},
            {"page": "0"},
        ],
    )
    def test_invalid_values(self, params):
        with pytest.raises(ValidationError, match="Invalid search parameters"):
            parse_search_params(params)


class TestBuildConditions:
    def test_unrestricted_default(self):
        """Only the active-candidate clause applies."""
        assert len(build_search_conditions(SearchFilters())) == 1

    def test_no_pipeline_access(self):
        conditions = build_search_conditions(SearchFilters(), allowed_pipelines=set())
        assert len(conditions) == 2
        assert str(conditions[1]) == "false"

    def test_every_filter_adds_a_condition(self):
        filters = SearchFilters(
            q="jane",
            pipeline_id=uuid.uuid4(),
            stage_id=uuid.uuid4(),
            tag_ids=[uuid.uuid4()],
            source="linkedin",
            assigned_to_user_id=uuid.uuid4(),
            status="rejected",
            date_from=date(2024, 1, 1),
            date_to=date(2024, 12, 31),
            has_email=True,
            has_phone=False,
            has_notes=True,
            has_attachments=False,
        )
        conditions = build_search_conditions(filters, allowed_pipelines={uuid.uuid4()})
        assert len(conditions) == 15

    def test_status_all_adds_nothing(self):
        assert len(build_search_conditions(SearchFilters(status="all"))) == 1

    @pytest.mark.parametrize(
        "flag, column",
        [("has_email", "candidates.email"), ("has_phone", "candidates.phone_e164")],
    )
    def test_contact_flags(self, flag, column):
        present = str(build_search_conditions(SearchFilters(**{flag: True}))[-1])
        missing = str(build_search_conditions(SearchFilters(**{flag: False}))[-1])
        assert present == f"{column} IS NOT NULL"
        assert missing == f"{column} IS NULL"

    @pytest.mark.parametrize("flag, table", [("has_notes", "notes"), ("has_attachments", "attachments")])
    def test_related_row_flags(self, flag, table):
        present = str(build_search_conditions(SearchFilters(**{flag: True}))[-1])
        missing = str(build_search_conditions(SearchFilters(**{flag: False}))[-1])
        assert present.startswith("EXISTS")
        assert f"{table}.candidate_id = candidates.id" in present
        assert missing.startswith("NOT")
        assert f"{table}.candidate_id = candidates.id" in missing

    def test_last_query_flag_drives_condition(self):
        filters = parse_search_params(QueryParams("has_email=true&has_email=false"))
        assert str(build_search_conditions(filters)[-1]) == "candidates.email IS NULL"


class TestResolveSort:
    def test_unknown_field_falls_back(self):
        assert len(resolve_sort("salary", "asc")) == 1

    def test_known_field_with_tiebreak(self):
        clauses = resolve_sort("full_name", "asc")
        assert len(clauses) == 2
        assert "full_name ASC" in str(clauses[0])

    def test_stage_sorts_by_name(self):
        assert "stages.name" in str(resolve_sort("stage", "desc")[0])
