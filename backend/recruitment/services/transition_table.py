"""Job posting status state machine, expressed as data.

Every legal (and explicitly forbidden) status change is one ``TransitionRule``.
Service code only ever asks the table; adding a transition means adding a row.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable


class JobStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    CLOSED = "closed"
    ARCHIVED = "archived"


class TransitionErrorCode(str, Enum):
    RULE_NOT_FOUND = "RULE_NOT_FOUND"
    FORBIDDEN_TRANSITION = "FORBIDDEN_TRANSITION"
    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"
    BUSINESS_RULE_REJECTED = "BUSINESS_RULE_REJECTED"
    STATUS_CONFLICT = "STATUS_CONFLICT"
    PERSISTENCE_FAILURE = "PERSISTENCE_FAILURE"


BusinessRule = Callable[[dict[str, Any]], bool | str]

DEFAULT_BUSINESS_RULE_ERROR = "Business rule validation failed."


class DuplicateTransitionRule(ValueError):
    pass


@dataclass(frozen=True)
class TransitionRule:
    from_status: JobStatus
    to_status: JobStatus
    allowed: bool
    required_fields: tuple[str, ...] = ()
    business_rule: BusinessRule | None = None


@dataclass(frozen=True)
class TransitionCheck:
    ok: bool
    code: TransitionErrorCode | None = None
    error: str | None = None
    required_fields: tuple[str, ...] = field(default_factory=tuple)


def _no_pending_applications(context: dict[str, Any]) -> bool | str:
    return not context.get("has_pending_applications") or "Cannot archive with pending applications"


TRANSITIONS: list[TransitionRule] = [
    TransitionRule(JobStatus.DRAFT, JobStatus.PUBLISHED, allowed=True),
    TransitionRule(JobStatus.DRAFT, JobStatus.ARCHIVED, allowed=True, required_fields=("archive_reason",)),
    TransitionRule(
        JobStatus.PUBLISHED,
        JobStatus.CLOSED,
        allowed=True,
        required_fields=("close_reason", "handle_pending_applications"),
    ),
    TransitionRule(
        JobStatus.PUBLISHED,
        JobStatus.ARCHIVED,
        allowed=True,
        required_fields=("archive_reason",),
        business_rule=_no_pending_applications,
    ),
    # reopen
    TransitionRule(JobStatus.CLOSED, JobStatus.PUBLISHED, allowed=True),
    TransitionRule(JobStatus.CLOSED, JobStatus.ARCHIVED, allowed=True, required_fields=("archive_reason",)),
    # forbidden
    TransitionRule(JobStatus.PUBLISHED, JobStatus.DRAFT, allowed=False),
    TransitionRule(JobStatus.ARCHIVED, JobStatus.PUBLISHED, allowed=False),
    TransitionRule(JobStatus.ARCHIVED, JobStatus.CLOSED, allowed=False),
    TransitionRule(JobStatus.ARCHIVED, JobStatus.DRAFT, allowed=False),
]


def is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


class TransitionTable:
    def __init__(self, rules: Iterable[TransitionRule]):
        self._rules: dict[tuple[JobStatus, JobStatus], TransitionRule] = {}
        for rule in rules:
            key = (JobStatus(rule.from_status), JobStatus(rule.to_status))
            if key in self._rules:
                raise DuplicateTransitionRule(
                    f"Duplicate transition rule for {key[0].value} -> {key[1].value}"
                )
            self._rules[key] = rule

    def __len__(self) -> int:
        return len(self._rules)

    def lookup(self, from_status: JobStatus, to_status: JobStatus) -> TransitionRule | None:
        return self._rules.get((JobStatus(from_status), JobStatus(to_status)))

    def next_statuses(self, from_status: JobStatus) -> list[JobStatus]:
        from_status = JobStatus(from_status)
        return [
            to for (frm, to), rule in self._rules.items()
            if frm == from_status and rule.allowed
        ]

    def required_fields(self, from_status: JobStatus, to_status: JobStatus) -> tuple[str, ...]:
        rule = self.lookup(from_status, to_status)
        return rule.required_fields if rule else ()

    def check(self, from_status: JobStatus, to_status: JobStatus, context: dict[str, Any]) -> TransitionCheck:
        """Validate a requested change without touching storage.

        Order matters: existence, then ``allowed``, then required fields, then
        the business rule. The first failure wins.
        """
        frm, to = JobStatus(from_status), JobStatus(to_status)
        rule = self.lookup(frm, to)
        if rule is None:
            return TransitionCheck(
                ok=False,
                code=TransitionErrorCode.RULE_NOT_FOUND,
                error=f"Transition from {frm.value} to {to.value} is not defined.",
            )
        if not rule.allowed:
            return TransitionCheck(
                ok=False,
                code=TransitionErrorCode.FORBIDDEN_TRANSITION,
                error=f"Transition from {frm.value} to {to.value} is not allowed.",
            )
        for name in rule.required_fields:
            if is_missing(context.get(name)):
                return TransitionCheck(
                    ok=False,
                    code=TransitionErrorCode.MISSING_REQUIRED_FIELD,
                    error=f"Field '{name}' is required for this transition.",
                    required_fields=rule.required_fields,
                )
        if rule.business_rule is not None:
            outcome = rule.business_rule(context)
            if outcome is not True:
                return TransitionCheck(
                    ok=False,
                    code=TransitionErrorCode.BUSINESS_RULE_REJECTED,
                    error=outcome if isinstance(outcome, str) and outcome else DEFAULT_BUSINESS_RULE_ERROR,
                )
        return TransitionCheck(ok=True, required_fields=rule.required_fields)


TRANSITION_TABLE = TransitionTable(TRANSITIONS)
