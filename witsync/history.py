"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of witsync, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Audit trail synthesis from a work item's revision history.

The target item is created fresh, so the source history is rendered as one
HTML document and stored as the comment of the new item's first revision.
"""

from datetime import datetime
from typing import Any

from dateutil import parser as date_parser

from witsync.core.logging import get_logger
from witsync.models import CHANGED_DATE_FIELD, HISTORY_FIELD, LinkBaseType, Revision, WorkItem

logger = get_logger("witsync.history")

# Size ceiling of a long text field on the target
MAX_HISTORY_LENGTH = 1048575

# Display names of fields that change on every revision
HISTORY_NOISE_FIELDS = frozenset(
    {
        "History",
        "Changed By",
        "Changed Date",
        "Watermark",
        "Authorized Date",
        "Authorized As",
        "Revised Date",
    }
)

EXTERNAL_LINK_COUNT = "External Link Count"
CHANGED_BY_FIELD = "System.ChangedBy"

HISTORY_HEADER = (
    "<p>History from previous work item:</p>"
    "<table border='1' style='width:100%;border-color:#C0C0C0;'>"
)
HISTORY_FOOTER = "<p>Migrated by witsync.</p>"


def format_timestamp(value: Any) -> str:
    """Render a timestamp as e.g. ``Tuesday, March 4, 2025 9:05:07 AM``."""
    if value is None or value == "":
        return ""
    if isinstance(value, datetime):
        moment = value
    else:
        try:
            moment = date_parser.parse(str(value))
        except (ValueError, OverflowError):
            logger.debug(f"Unparsable revision date '{value}'")
            return str(value)
    hour = moment.hour % 12 or 12
    return (
        f"{moment:%A}, {moment:%B} {moment.day}, {moment.year} "
        f"{hour}:{moment:%M}:{moment:%S} {moment:%p}"
    )


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def render_revision(revision: Revision) -> str:
    parts = ["<tr>", "<tr><td style='align:right;width:100%'>"]
    parts.append(
        f"<p><b>{_text(revision.get(CHANGED_BY_FIELD))} on "
        f"{format_timestamp(revision.get(CHANGED_DATE_FIELD))}</b></p>"
    )

    comment = revision.get(HISTORY_FIELD)
    if comment:
        parts.append(f"<p>{comment}</p>")

    parts.append("<table border='1' style='border-color:#C0C0C0;'>")
    parts.append("<tr><th>Field</th><th>Old Value</th><th>New Value</th></tr>")
    external_links_changed = False
    for field in revision.field_changes:
        if field.name in HISTORY_NOISE_FIELDS or not field.changed:
            continue
        if field.name == EXTERNAL_LINK_COUNT:
            external_links_changed = True
        parts.append(
            f"<tr><td>{field.name}</td><td>{_text(field.original_value)}</td>"
            f"<td>{_text(field.value)}</td></tr>"
        )
    parts.append("</table>")

    if revision.links and external_links_changed:
        parts.append("<table border='1' style='border-color:#C0C0C0;'>")
        parts.append("<tr><th>Link Type</th><th>Description</th></tr>")
        for link in revision.links:
            description = ""
            if link.base_type in (LinkBaseType.EXTERNAL_LINK, LinkBaseType.HYPERLINK):
                description = link.target
            parts.append(f"<tr><td>{link.base_type.value}</td><td>{description}</td></tr>")
        parts.append("</table>")

    parts.append("</td></tr>")
    return "".join(parts)


def build_history(item: WorkItem, max_length: int = MAX_HISTORY_LENGTH) -> str:
    """
    Build the audit trail of ``item``, newest revision first.

    Args:
        item: The source work item with its revisions
        max_length: Hard ceiling of the returned document

    Returns:
        The HTML document, cut to ``max_length`` characters when longer, or
        an empty string when the item has no revisions

    """
    if not item.revisions:
        return ""

    revisions = sorted(item.revisions, key=lambda r: r.index, reverse=True)
    history = HISTORY_HEADER + "".join(render_revision(r) for r in revisions)
    history += "</table>" + HISTORY_FOOTER

    if len(history) > max_length:
        logger.debug(f"History of work item {item.id} cut from {len(history)} characters")
        history = history[:max_length]
    return history
