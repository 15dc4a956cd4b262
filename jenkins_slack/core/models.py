"""Core value types: user credentials and parsed job references.

WHY: The vault and the parser hand these values to every command handler.
Typed dataclasses make the contract explicit and keep the plaintext token
out of logs and reprs.

RULES:
- UserCredential.token is plaintext in memory only; repr hides it
- ParsedJobReference is built per command and never persisted
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class UserCredential:
    """Jenkins credentials of one Slack user.

    RULES:
    - user_id: Slack user ID that owns the record
    - username: Jenkins username
    - token: Jenkins API token (plaintext, never persisted as-is)
    """

    user_id: str
    username: str
    token: str = field(repr=False)


@dataclass(frozen=True)
class ParsedJobReference:
    """A job path plus an optional build number, as typed by the user.

    WHY: Folder names and job names may contain spaces; the parser has
    already resolved token boundaries, so downstream code works with a
    clean path and a separate build number.

    RULES:
    - job_path uses "/" between folders and may contain spaces
    - build_number is "" when the user did not give one, otherwise the
      digits of a positive integer (parse_job_reference enforces this)
    """

    job_path: str
    build_number: str = ""

    @property
    def segments(self) -> List[str]:
        return [s for s in self.job_path.split("/") if s]

    @property
    def build_number_int(self) -> Optional[int]:
        """The build number as int, or None when absent (meaning the last build)."""
        if self.build_number.isdigit():
            return int(self.build_number)
        return None
