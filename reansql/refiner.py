from __future__ import annotations

import logging
import re
import typing as t

from reansql.errors import GenerationExhausted

logger = logging.getLogger(__name__)

EXPLANATION_UNAVAILABLE = "Explanation unavailable.\n- The AI service could not produce an explanation for this question."

NUMBERED_BULLET_RE = re.compile(r"^\d+\.\s*")
SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")

FEW_SHOT_EXAMPLE = (
    "Returns each department with its average salary.\n"
    "- GROUP BY department_id puts employees of the same department together.\n"
    "- AVG(salary) computes the mean salary per group.\n"
    "- The SELECT list returns the department id next to its average."
)


class Generator(t.Protocol):
    def generate(self, prompt: str) -> str: ...


def _is_bullet(line: str) -> bool:
    return line.startswith("-") or line.startswith("* ") or bool(NUMBERED_BULLET_RE.match(line))


def _as_bullet(line: str) -> str:
    if NUMBERED_BULLET_RE.match(line):
        body = NUMBERED_BULLET_RE.sub("", line, count=1)
    else:
        body = line[1:]
    return f"- {body.strip()}"


def has_bullets(text: str) -> bool:
    return any(line.strip().startswith("- ") for line in text.splitlines())


def extract_summary_and_bullets(text: str) -> str:
    """Reduce model output to one summary line followed by `- ` bullets.

    When the text has no bullet lines at all, the remaining text after the
    summary is split into sentences and each becomes a bullet. A single
    paragraph is split the same way after its first sentence.
    """
    summary: str | None = None
    bullets: list[str] = []
    rest: list[str] = []

    for raw in (text or "").splitlines():
        line = raw.strip()
        if not line:
            continue
        if _is_bullet(line):
            bullets.append(_as_bullet(line))
            continue
        if bullets:
            break
        if summary is None:
            summary = line
        else:
            rest.append(line)

    if not bullets and rest:
        sentences = SENTENCE_SPLIT_RE.split(" ".join(rest))
        bullets = [f"- {s.strip()}" for s in sentences if s.strip()]
    elif not bullets and summary:
        # A lone paragraph: first sentence is the summary, the others are bullets.
        sentences = [s.strip() for s in SENTENCE_SPLIT_RE.split(summary) if s.strip()]
        summary = sentences[0]
        bullets = [f"- {s}" for s in sentences[1:]]

    lines = ([summary] if summary else []) + bullets
    return "\n".join(lines)


def explanation_prompt(question_text: str, answer: str) -> str:
    return (
        "You are an SQL tutor. Explain the solution below to a student.\n"
        "Respond with ONE short summary line, then a Markdown bullet list "
        "(each line starting with '- '). Nothing else.\n\n"
        f"Question:\n{question_text}\n\nSolution:\n{answer}"
    )


def reformat_prompt(explanation: str) -> str:
    return (
        "Reformat the explanation below into exactly this shape: one summary line, "
        "then a Markdown bullet list where every line starts with '- '. "
        "Do not add headings, code blocks or closing remarks.\n\n"
        f"Example:\n{FEW_SHOT_EXAMPLE}\n\n"
        f"Explanation to reformat:\n{explanation}"
    )


def corrective_prompt(explanation: str) -> str:
    return (
        "Your previous answer did not follow the instructions. It must be one summary line "
        "followed by bullet points, each starting with '- '. Rewrite it now.\n\n"
        f"Example:\n{FEW_SHOT_EXAMPLE}\n\n"
        f"Previous answer:\n{explanation}"
    )


class BulletRefiner:
    """Coerce model explanations into a summary line plus bullets.

    Best effort: `refine` makes at most three generator calls and never
    raises GenerationExhausted. A failed first call yields
    EXPLANATION_UNAVAILABLE; a failed later call keeps the best text so far.
    """

    def __init__(self, gemini: Generator) -> None:
        self.gemini = gemini

    def refine(self, question_text: str, answer: str) -> str:
        try:
            first = self.gemini.generate(explanation_prompt(question_text, answer))
        except GenerationExhausted as e:
            logger.warning("Explanation generation failed: %s", e)
            return EXPLANATION_UNAVAILABLE

        try:
            reformatted = self.gemini.generate(reformat_prompt(first))
        except GenerationExhausted as e:
            logger.warning("Explanation reformat failed, using first draft: %s", e)
            reformatted = first

        refined = extract_summary_and_bullets(reformatted)
        if has_bullets(refined):
            return refined

        logger.info("Explanation has no bullets after reformat; sending corrective prompt")
        try:
            corrected = self.gemini.generate(corrective_prompt(refined or reformatted))
        except GenerationExhausted as e:
            logger.warning("Corrective explanation prompt failed: %s", e)
            return refined or reformatted.strip()
        return extract_summary_and_bullets(corrected) or corrected.strip()
