from __future__ import annotations

import re

from reansql.records import QuestionRecord

QUESTION_START_RE = re.compile(r"^\d+[.)].*$")


def segment_questions(text: str) -> list[QuestionRecord]:
    """Split extracted document text into numbered questions.

    A line like ``3. Select all...`` or ``3) Select all...`` opens a question;
    later non-blank lines are folded into it with a single space. Anything
    before the first numbered line is dropped.
    """
    questions: list[str] = []
    current: str | None = None

    for raw in (text or "").splitlines():
        line = raw.strip()
        if not line:
            continue
        if QUESTION_START_RE.match(line):
            if current is not None:
                questions.append(current)
            current = line
        elif current is not None:
            current = f"{current} {line}"

    if current is not None:
        questions.append(current)

    return [QuestionRecord(question_text=q) for q in questions]
