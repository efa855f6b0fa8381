"""Heuristic quality score for a coaching question.

Four sub-scores of 0-10 each:

  length      word count close to an 8-15 word ideal
  open_ended  penalizes yes/no openers (do, is, can, ...)
  clarity     penalizes very long words
  powerful    rewards interrogative openers and reflective phrasing

The score is informational; it never decides whether a question is shown.
"""

import re

from coaching_assistant.models import QuestionScore

_CLOSED_STARTERS = re.compile(
    r"^(do|does|did|is|are|was|were|have|has|had|can|could|will|would|should)", re.IGNORECASE
)
_LONG_WORD = re.compile(r"\b\w{12,}\b")
_POWERFUL_STARTERS = re.compile(r"^(what|how|where|when|who|which)", re.IGNORECASE)
_POWERFUL_PHRASES = re.compile(
    r"(what.*if|how.*might|what.*possible|what.*learn|what.*notice|what.*different)", re.IGNORECASE
)


def _length_score(question: str) -> int:
    words = len(question.split(" "))
    if 8 <= words <= 15:
        return 10
    if 5 <= words <= 20:
        return 7
    if words < 5:
        return 3
    return 5


def quality_bucket(total: int) -> str:
    if total >= 30:
        return "excellent"
    if total >= 20:
        return "good"
    return "needs improvement"


def score_question(question: str) -> QuestionScore:
    scores = {
        "length": _length_score(question),
        "open_ended": 3 if _CLOSED_STARTERS.match(question) else 10,
        "clarity": max(0, 10 - 3 * len(_LONG_WORD.findall(question))),
        "powerful": 0,
    }
    if _POWERFUL_STARTERS.match(question):
        scores["powerful"] += 5
    if _POWERFUL_PHRASES.search(question):
        scores["powerful"] += 5

    total = sum(scores.values())
    return QuestionScore(scores=scores, total=total, quality=quality_bucket(total))
