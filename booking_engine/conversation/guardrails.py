"""
Post-processing guard for outgoing chat replies.

A reply may only tell the client that something is booked when a booking
was actually committed in that turn. Any success wording in a turn that
did not commit is replaced with neutral phrasing before it is sent.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

NEUTRAL_REPLY = "That time works. Should we continue?"


@dataclass
class GuardrailResult:
    """Outcome of a single guardrail check."""
    passed: bool
    violation_type: Optional[str] = None
    message: Optional[str] = None
    severity: str = "warning"  # "warning" | "rewrite"


class CommitClaimGuardrail:
    """Flags replies that claim a booking exists when none was committed."""

    SUCCESS_PATTERNS = [
        r"\bbooked\b",
        r"\bconfirmed\b",
        r"\bis scheduled\b",
        r"\byou'?re all set\b",
        r"\bsee you (?:on|at|then)\b",
        r"\breference (?:number|code)\b",
        r"\bBK-[0-9A-F]{6}\b",
        r"\bagendad[oa]\b",
        r"\bconfirmad[oa]\b",
        r"\bmarcad[oa]\b",
    ]

    def __init__(self) -> None:
        self._patterns = [re.compile(p, re.IGNORECASE) for p in self.SUCCESS_PATTERNS]

    def check(self, reply: str, committed: bool) -> GuardrailResult:
        if committed:
            return GuardrailResult(passed=True)
        for pattern in self._patterns:
            match = pattern.search(reply)
            if match:
                return GuardrailResult(
                    passed=False,
                    violation_type="uncommitted_success_claim",
                    message=f"Reply claims success ('{match.group(0)}') without a commit.",
                    severity="rewrite",
                )
        return GuardrailResult(passed=True)


class EmptyReplyGuardrail:
    def check(self, reply: str, committed: bool) -> GuardrailResult:
        if reply.strip():
            return GuardrailResult(passed=True)
        return GuardrailResult(
            passed=False,
            violation_type="empty_reply",
            message="Reply is empty.",
            severity="rewrite",
        )


class ReplyGuard:
    """Runs every reply guardrail and rewrites the reply when one fails."""

    def __init__(self, neutral_reply: str = NEUTRAL_REPLY) -> None:
        self.neutral_reply = neutral_reply
        self.guardrails = [CommitClaimGuardrail(), EmptyReplyGuardrail()]

    def check(self, reply: str, committed: bool) -> list[GuardrailResult]:
        results = [g.check(reply, committed) for g in self.guardrails]
        return [r for r in results if not r.passed]

    def apply(self, reply: str, committed: bool) -> str:
        """Return the reply to send: unchanged, or the neutral rewrite."""
        violations = self.check(reply, committed)
        if any(v.severity == "rewrite" for v in violations):
            for v in violations:
                logger.warning("Reply rewritten: %s", v.message)
            return self.neutral_reply
        return reply
