"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of witsync, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Test suite for history synthesis.
"""

from datetime import datetime

import pytest

from tests.fixtures.factories import RevisionFactory, WorkItemFactory
from witsync.history import (
    HISTORY_FOOTER,
    HISTORY_HEADER,
    MAX_HISTORY_LENGTH,
    build_history,
    format_timestamp,
    render_revision,
)
from witsync.models import Link, LinkBaseType


@pytest.mark.unit
class TestFormatTimestamp:
    """Tests for revision timestamps."""

    def test_long_date_and_time(self):
        assert format_timestamp("2025-03-04T09:05:07") == "Tuesday, March 4, 2025 9:05:07 AM"

    def test_afternoon(self):
        assert format_timestamp(datetime(2024, 3, 5, 14, 30, 0)) == "Tuesday, March 5, 2024 2:30:00 PM"

    def test_missing_and_unparsable(self):
        assert format_timestamp(None) == ""
        assert format_timestamp("someday") == "someday"


@pytest.mark.unit
class TestBuildHistory:
    """Tests for the audit trail document."""

    def test_no_revisions(self):
        assert build_history(WorkItemFactory.create(revisions=[])) == ""

    def test_newest_revision_first(self):
        item = WorkItemFactory.create(
            revisions=[
                RevisionFactory.create(0, changed_by="Alice"),
                RevisionFactory.create(1, changed_by="Bob"),
                RevisionFactory.create(2, changed_by="Carol"),
            ]
        )

        history = build_history(item)

        assert history.startswith(HISTORY_HEADER)
        assert history.endswith(HISTORY_FOOTER)
        assert history.index("Carol") < history.index("Bob") < history.index("Alice")

    def test_noise_fields_are_excluded(self):
        revision = RevisionFactory.create(
            1,
            changes=[
                ("System.State", "State", "New", "Active"),
                ("System.Watermark", "Watermark", 1, 2),
                ("System.AuthorizedAs", "Authorized As", "a", "b"),
            ],
        )

        rendered = render_revision(revision)

        assert "<tr><td>State</td><td>New</td><td>Active</td></tr>" in rendered
        assert "Watermark" not in rendered
        assert "Authorized As" not in rendered
        assert "<td>Changed By</td>" not in rendered

    def test_unchanged_fields_are_excluded(self):
        revision = RevisionFactory.create(1, changes=[("System.Title", "Title", "Same", "Same")])

        assert "<td>Title</td>" not in render_revision(revision)

    def test_comment_is_rendered(self):
        revision = RevisionFactory.create(1, comment="Reproduced on staging")

        assert "<p>Reproduced on staging</p>" in render_revision(revision)

    def test_link_table_only_when_external_links_changed(self):
        links = [
            Link(base_type=LinkBaseType.HYPERLINK, target="https://docs.example.com"),
            Link(base_type=LinkBaseType.RELATED_LINK, target="42"),
        ]
        quiet = RevisionFactory.create(1, links=links)
        changed = RevisionFactory.create(
            2, links=links, changes=[("System.ExternalLinkCount", "External Link Count", 0, 1)]
        )

        assert "Link Type" not in render_revision(quiet)
        rendered = render_revision(changed)
        assert "<tr><td>Hyperlink</td><td>https://docs.example.com</td></tr>" in rendered
        assert "<tr><td>RelatedLink</td><td></td></tr>" in rendered

    def test_cut_at_ceiling(self):
        """A document over the ceiling is cut to exactly the ceiling."""
        huge = "x" * (MAX_HISTORY_LENGTH + 100)
        item = WorkItemFactory.create(revisions=[RevisionFactory.create(0, comment=huge)])

        history = build_history(item)

        assert len(history) == MAX_HISTORY_LENGTH
        assert not history.endswith(HISTORY_FOOTER)

    def test_custom_ceiling(self):
        item = WorkItemFactory.create(revisions=[RevisionFactory.create(0)])

        assert len(build_history(item, max_length=50)) == 50

    def test_short_document_is_not_cut(self):
        item = WorkItemFactory.create(revisions=[RevisionFactory.create(0)])

        history = build_history(item)

        assert len(history) < MAX_HISTORY_LENGTH
        assert history.endswith(HISTORY_FOOTER)
