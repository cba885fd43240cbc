from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from leadcapture.services.validation import SanitizedSubmission


@dataclass(frozen=True)
class SpamVerdict:
    is_spam: bool
    signals: List[str] = field(default_factory=list)

    @property
    def reason(self) -> str:
        return ", ".join(self.signals)


class SpamFilter:
    """Scores a sanitized submission against independent suspicion signals.

    A single signal is tolerated; rejection needs ``min_signals`` of them.
    """

    def __init__(
        self,
        name_tokens: Iterable[str],
        disposable_domains: Iterable[str],
        custom_field_threshold: int = 10,
        min_signals: int = 2,
    ):
        self.name_tokens = tuple(token.lower() for token in name_tokens)
        self.disposable_domains = frozenset(domain.lower() for domain in disposable_domains)
        self.custom_field_threshold = custom_field_threshold
        self.min_signals = min_signals

    def evaluate(self, submission: SanitizedSubmission, user_agent: Optional[str]) -> SpamVerdict:
        signals = []

        name = submission.name.lower()
        if any(token in name for token in self.name_tokens):
            signals.append("suspicious_name")

        if submission.email_domain in self.disposable_domains:
            signals.append("suspicious_email_domain")

        if not user_agent or not user_agent.strip():
            signals.append("missing_user_agent")

        if submission.submitted_custom_field_count > self.custom_field_threshold:
            signals.append("too_many_fields")

        return SpamVerdict(is_spam=len(signals) >= self.min_signals, signals=signals)
