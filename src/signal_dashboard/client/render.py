"""Plain-terminal rendering for the week layout, chat transcript and navigation."""

from __future__ import annotations

from datetime import timedelta

import click

from signal_dashboard.client.calendar_view import DAYS_PER_WEEK, TimedBlock, WeekLayout
from signal_dashboard.client.chat_view import ROLE_USER, ChatMessage
from signal_dashboard.client.stream import Citation
from signal_dashboard.navigation import NavigationEntry

UNTITLED = "(No title)"


def _summary(event: dict) -> str:
    summary = event.get("summary")
    return summary if isinstance(summary, str) and summary else UNTITLED


def _format_hour(hour: float) -> str:
    minutes = int(round(hour * 60))
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def _timed_line(block: TimedBlock) -> str:
    end_hour = block.top + block.height
    span = f"{_format_hour(block.top)}-{_format_hour(end_hour)}"
    return f"  {click.style(span, fg='cyan')} {_summary(block.event)}"


def render_week(layout: WeekLayout) -> list[str]:
    """Render *layout* as lines: one header per day, all-day row, then timed events."""
    first = layout.days[0].day
    last = first + timedelta(days=DAYS_PER_WEEK - 1)
    lines = [click.style(f"Week of {first:%b %d} - {last:%b %d, %Y}", bold=True)]

    for index, column in enumerate(layout.days):
        is_today = layout.now is not None and layout.now.day_index == index
        header = f"{column.day:%a %m/%d}"
        lines.append(click.style(header, bold=True, fg="yellow" if is_today else None))

        for event in column.all_day:
            lines.append(f"  {click.style('all day', fg='magenta')} {_summary(event)}")

        marker_pending = is_today
        for block in column.timed:
            if marker_pending and layout.now is not None and block.top > layout.now.hour:
                lines.append(_now_line(layout.now.hour))
                marker_pending = False
            lines.append(_timed_line(block))
        if marker_pending and layout.now is not None:
            lines.append(_now_line(layout.now.hour))

        if not column.all_day and not column.timed:
            lines.append(click.style("  -", dim=True))
    return lines


def _now_line(hour: float) -> str:
    return click.style(f"  --- now {_format_hour(hour)} ---", fg="red")


def _citation_line(number: int, citation: Citation) -> str:
    label = citation.label or citation.url or ""
    if citation.label and citation.url:
        label = f"{citation.label} <{citation.url}>"
    return f"  [{number}] {label}"


def render_message(message: ChatMessage) -> list[str]:
    """Render one chat message with a numbered citation list."""
    speaker = "you" if message.role == ROLE_USER else "assistant"
    color = "green" if message.role == ROLE_USER else "blue"
    lines = [f"{click.style(speaker, fg=color, bold=True)}: {message.content}"]
    if message.citations:
        lines.append(click.style("Sources:", dim=True))
        lines.extend(_citation_line(i, c) for i, c in enumerate(message.citations, start=1))
    return lines


def render_navigation(entries: tuple[NavigationEntry, ...]) -> list[str]:
    lines = []
    for entry in entries:
        if entry.available:
            lines.append(f"{entry.name:<16} {entry.href}")
        else:
            lines.append(click.style(f"{entry.name:<16} (coming soon)", dim=True))
    return lines
