"""
TalentDesk Backend: Duplicate Grouping Tests
============================================

`build_duplicate_groups` is pure; rows only need id, email and phone_e164.
"""

from types import SimpleNamespace

from talentdesk.services.duplicate_service import build_duplicate_groups


def row(id, email=None, phone=None):
    return SimpleNamespace(id=id, email=email, phone_e164=phone)


def ids(group):
    return [m.id for m in group.members]


class TestEmailGroups:
    def test_case_insensitive_email_match(self):
        a = row("a", email="Jane@Example.com")
        b = row("b", email="jane@example.com")
        groups = build_duplicate_groups([a, b], [])
        assert len(groups) == 1
        assert groups[0].type == "email"
        assert groups[0].value == "jane@example.com"
        assert ids(groups[0]) == ["a", "b"]

    def test_singletons_are_not_groups(self):
        groups = build_duplicate_groups([row("a", email="x@y.be"), row("b", email="z@y.be")], [])
        assert groups == []


class TestPhoneGroups:
    def test_phone_only_duplicates(self):
        a = row("a", phone="+32470123456")
        b = row("b", phone="+32470123456")
        groups = build_duplicate_groups([], [a, b])
        assert [(g.type, ids(g)) for g in groups] == [("phone", ["a", "b"])]

    def test_phone_group_fully_covered_by_email_group_is_skipped(self):
        a = row("a", email="j@x.be", phone="+3211")
        b = row("b", email="j@x.be", phone="+3211")
        groups = build_duplicate_groups([a, b], [a, b])
        assert [g.type for g in groups] == ["email"]

    def test_single_new_member_reports_full_group_for_context(self):
        a = row("a", email="j@x.be", phone="+3211")
        b = row("b", email="j@x.be", phone="+3211")
        c = row("c", phone="+3211")
        groups = build_duplicate_groups([a, b], [a, b, c])
        phone = [g for g in groups if g.type == "phone"]
        assert len(phone) == 1
        assert ids(phone[0]) == ["a", "b", "c"]

    def test_two_new_members_report_only_the_new_ones(self):
        a = row("a", email="j@x.be", phone="+3211")
        b = row("b", email="j@x.be", phone="+3211")
        c = row("c", phone="+3211")
        d = row("d", phone="+3211")
        groups = build_duplicate_groups([a, b], [a, b, c, d])
        phone = [g for g in groups if g.type == "phone"]
        assert ids(phone[0]) == ["c", "d"]


class TestOrdering:
    def test_largest_group_first(self):
        pair = [row("a", email="p@x.be"), row("b", email="p@x.be")]
        triple = [row(i, phone="+329") for i in ("c", "d", "e")]
        groups = build_duplicate_groups(pair, triple)
        assert [len(g.members) for g in groups] == [3, 2]

    def test_every_group_has_at_least_two_members(self):
        a = row("a", email="j@x.be", phone="+3211")
        b = row("b", email="j@x.be", phone="+3222")
        c = row("c", phone="+3222")
        groups = build_duplicate_groups([a, b], [a, b, c])
        assert all(len(g.members) >= 2 for g in groups)
        assert groups[0].key.startswith(("email:", "phone:"))
