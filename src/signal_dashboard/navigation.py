"""Sidebar sections of the dashboard."""

from __future__ import annotations

from dataclasses import dataclass

PLACEHOLDER_HREF = "#"


@dataclass(frozen=True)
class NavigationEntry:
    name: str
    href: str
    icon: str

    @property
    def available(self) -> bool:
        """False for sections that are listed but not built yet."""
        return self.href != PLACEHOLDER_HREF


NAVIGATION: tuple[NavigationEntry, ...] = (
    NavigationEntry("Calendar", "/calendar", "calendar"),
    NavigationEntry("Take a Note", PLACEHOLDER_HREF, "pencil-square"),
    NavigationEntry("First Pro", PLACEHOLDER_HREF, "star"),
    NavigationEntry("Deep Work", PLACEHOLDER_HREF, "briefcase"),
    NavigationEntry("Shallow Work", PLACEHOLDER_HREF, "chart-bar"),
    NavigationEntry("Question", "/question", "question-mark-circle"),
    NavigationEntry("Learn", PLACEHOLDER_HREF, "academic-cap"),
    NavigationEntry("News", PLACEHOLDER_HREF, "newspaper"),
)
