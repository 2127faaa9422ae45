"""Branding constants for user-visible CLI and server copy.

Keep CLI/internal identifiers (e.g. `embuilder`, env vars, `.claude/skills`) unchanged
for compatibility. Only use these constants for user-visible strings.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Branding:
    product_name: str = "EMBuilder"
    tagline: str = "Event-Model driven development toolkit for Claude Code"

    @property
    def skills_label(self) -> str:
        return f"{self.product_name} skills"

    @property
    def status_title(self) -> str:
        return f"{self.product_name} Skills Status"

    @property
    def server_label(self) -> str:
        return f"{self.product_name} server"


BRANDING = Branding()
