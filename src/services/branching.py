"""
Branching rule evaluation.

Maps the responses collected for a level to the content path of the next
level. Pure and deterministic: the same rules and responses always yield
the same path, which keeps level completion replayable.
"""

from typing import Iterable, Sequence

import structlog

from src.domain.models.experiment import BranchingRule
from src.domain.models.response import ResponseValue

log = structlog.get_logger(__name__)

DEFAULT_CONDITION = "default"
DEFAULT_FALLBACK_PATH = "default"


def rule_matches(rule: BranchingRule, responses: Iterable[ResponseValue]) -> bool:
    """Return True if the rule's condition holds for the response set.

    "default" always matches. "<question_id>:<expected>" matches when any
    response to question_id has a value equal to expected. Only the first
    colon separates the two, so expected values may contain colons. A
    condition with no colon that is not "default" never matches.
    """
    if rule.condition == DEFAULT_CONDITION:
        return True

    question_id, sep, expected = rule.condition.partition(":")
    if not sep:
        return False

    return any(
        r.question_id == question_id and r.value == expected for r in responses
    )


def evaluate(
    rules: Sequence[BranchingRule],
    responses: Iterable[ResponseValue],
    fallback: str = DEFAULT_FALLBACK_PATH,
) -> str:
    """
    Select the next content path.

    Args:
        rules: Rules in priority order; the first match wins
        responses: Question/value pairs for the level
        fallback: Path returned when no rule matches (a rule list without a
            "default" entry can fall through)

    Returns:
        target_path of the first matching rule, else fallback
    """
    response_list = list(responses)
    for rule in rules:
        if rule_matches(rule, response_list):
            return rule.target_path

    log.debug(
        "branching_fallback_used",
        rule_count=len(rules),
        response_count=len(response_list),
        fallback=fallback,
    )
    return fallback
