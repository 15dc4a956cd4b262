"""Job-name and build-number parsing for slash command arguments.

WHY: Jenkins folder and job names may contain spaces, and commands such as
`/jenkins get-log <job> <build>` take a trailing build number. Slack hands
us whitespace-split tokens, so quoting is the only way to tell
"my job 22" (job "my job", build 22) from a job literally named "my job 22".

HOW: A one-token input is taken as-is (minus a surrounding quote pair).
Longer inputs are re-joined with single spaces and scanned by a small
tokenizer. Each candidate is either a double-quoted segment or a bare run
of non-space, non-quote characters, optionally followed by whitespace and
a word-character run (the build number). Exactly one candidate must be
found; anything else is ambiguous.

RULES:
- parse_build_parameters([]) → ("", "", False)
- A bare single token is returned unchanged with an empty build number
- '"folder/job"' → ("folder/job", "", True)
- ['"folder', 'with', 'spaces/and', 'job"', '22']
  → ("folder with spaces/and job", "22", True)
- More than one candidate (e.g. "job 22 extra") → ok is False
- Stray quotes and backslashes are trimmed from both ends of the job path
- An empty job path after trimming (including a lone quote) → ok is False
- Slashes are NOT rewritten here (see api.client.rewrite_job_path)
"""

from __future__ import annotations

from typing import List, Sequence, Tuple

from jenkins_slack.core.models import ParsedJobReference
from jenkins_slack.errors import UserInputError

_QUOTE = '"'
_TRIM_CHARS = '\\"'


def parse_build_parameters(tokens: Sequence[str]) -> Tuple[str, str, bool]:
    """Split command tokens into (job_path, build_number, ok).

    Examples of valid input:
    1. jobname OR folder/jobname
    2. jobname 22 OR folder/jobname 22
    3. "jobname" OR "folder/jobname"
    4. "jobname" 22 OR "folder/jobname" 22
    5. "job name with space" OR "folder with space/job name with space"
    6. "job name with space" 22
    """
    if len(tokens) == 0:
        return "", "", False

    if len(tokens) == 1:
        token = tokens[0]
        if len(token) >= 2 and token.startswith(_QUOTE) and token.endswith(_QUOTE):
            token = token.strip(_TRIM_CHARS)
        if not token or token == _QUOTE:
            return "", "", False
        return token, "", True

    candidates = _scan_candidates(" ".join(tokens))
    if len(candidates) != 1:
        return "", "", False

    segment, build_number = candidates[0]
    job_path = segment.strip(_TRIM_CHARS)
    if not job_path:
        return "", "", False
    return job_path, build_number, True


def parse_job_reference(
    tokens: Sequence[str],
    allow_build_number: bool = True,
) -> ParsedJobReference:
    """Parse tokens into a ParsedJobReference or raise UserInputError.

    RULES:
    - A build number must be a positive integer
    - With allow_build_number=False any trailing word is rejected, so an
      unquoted "my job" never resolves to the job "my"
    """
    job_path, build_number, ok = parse_build_parameters(tokens)
    if not ok:
        raise UserInputError(
            "Please check `/jenkins help` to find help on how to specify "
            "the job name and build number."
        )
    if build_number and not allow_build_number:
        raise UserInputError(
            'Wrap job names with spaces in double quotes, e.g. `"my job"`.'
        )
    if build_number and not (build_number.isdigit() and int(build_number) > 0):
        raise UserInputError("Please specify a valid build number.")
    return ParsedJobReference(job_path=job_path, build_number=build_number)


# ---------------------------------------------------------------------------
# Tokenizer (module-private)
# ---------------------------------------------------------------------------


def _scan_candidates(text: str) -> List[Tuple[str, str]]:
    """Return every (segment, trailing_word) candidate found in text.

    HOW: Two-state scan. At each position either a quoted segment starts
    (a quote with a matching closing quote) or a bare segment starts (any
    character that is neither whitespace nor a quote). After a segment,
    whitespace is skipped and a word-character run is taken as the build
    number. Positions where no segment can start (whitespace, or a quote
    with no partner) are skipped.
    """
    candidates: List[Tuple[str, str]] = []
    i = 0
    length = len(text)

    while i < length:
        char = text[i]

        if char == _QUOTE:
            closing = text.find(_QUOTE, i + 1)
            if closing < 0:
                i += 1
                continue
            segment = text[i:closing + 1]
            i = closing + 1
        elif char.isspace():
            i += 1
            continue
        else:
            start = i
            while i < length and text[i] != _QUOTE and not text[i].isspace():
                i += 1
            segment = text[start:i]

        while i < length and text[i].isspace():
            i += 1

        start = i
        while i < length and _is_word_char(text[i]):
            i += 1

        candidates.append((segment, text[start:i]))

    return candidates


def _is_word_char(char: str) -> bool:
    return char.isascii() and (char.isalnum() or char == "_")
