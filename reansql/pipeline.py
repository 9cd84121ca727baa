from __future__ import annotations

import dataclasses
import enum
import logging
import re
import threading
import time
import typing as t

from reansql.errors import GenerationExhausted, NoQuestionsFound
from reansql.grading import CODE_BLOCK_RE
from reansql.records import QuestionRecord
from reansql.refiner import EXPLANATION_UNAVAILABLE, BulletRefiner, Generator
from reansql.segmenter import segment_questions

logger = logging.getLogger(__name__)

FAILED_ANSWER = "-- AI answer generation failed for this question. Try solving it on your own."
FAILED_EXPLANATION = "Explanation unavailable.\n- The AI service did not respond for this question."
MANUAL_ANSWER = "-- AI answers are unavailable right now. Practice this question manually."
MANUAL_EXPLANATION = "Manual practice mode.\n- The AI service could not be reached, so no reference answer was generated."

# String literals are matched first so comment markers inside them survive.
SQL_COMMENT_RE = re.compile(r"('(?:[^']|'')*'|\"(?:[^\"]|\"\")*\")|/\*[\s\S]*?\*/|--[^\n]*")


class QuestionStore(t.Protocol):
    def create(self, record: QuestionRecord) -> str: ...


class QuestionState(enum.Enum):
    PENDING = "pending"
    ANSWER_REQUESTED = "answer_requested"
    ANSWER_OBTAINED = "answer_obtained"
    ANSWER_FAILED = "answer_failed"
    EXPLANATION_REQUESTED = "explanation_requested"
    EXPLANATION_OBTAINED = "explanation_obtained"
    EXPLANATION_FAILED = "explanation_failed"
    STORED = "stored"


@dataclasses.dataclass(frozen=True)
class PipelineResult:
    questions: list[QuestionRecord]
    summary: str
    succeeded: int
    failed: int
    manual_mode: bool = False
    cancelled: bool = False

    def to_dict(self) -> dict[str, t.Any]:
        return {
            "questions": [q.to_dict() for q in self.questions],
            "message": self.summary,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "manualMode": self.manual_mode,
            "cancelled": self.cancelled,
        }


def _strip_comments(sql: str) -> str:
    s = SQL_COMMENT_RE.sub(lambda m: m.group(1) or "", sql)
    lines = [line.rstrip() for line in s.splitlines()]
    return "\n".join(lines).strip()


def strip_sql_comments(answer: str) -> str:
    """Remove SQL comments from the fenced code blocks of `answer`.

    Prose outside the fences is left alone. An answer with no fence is
    treated as bare SQL.
    """
    answer = answer or ""
    if not CODE_BLOCK_RE.search(answer):
        return _strip_comments(answer)

    def _block(m: re.Match[str]) -> str:
        opening = m.group(0)[: m.start(1) - m.start(0)]
        body = _strip_comments(m.group(1))
        return f"{opening}{body}\n```" if body else f"{opening}```"

    return CODE_BLOCK_RE.sub(_block, answer).strip()


def answer_prompt(question_text: str) -> str:
    return (
        "You are an expert SQL instructor. Write the SQL query that solves the exercise below.\n"
        "Return the query in a single ```sql code block. Do not include comments in the query.\n\n"
        f"Exercise:\n{question_text}"
    )


class PracticePipeline:
    """Turn extracted document text into stored practice questions.

    Questions are handled one at a time in document order, with a pause of
    `pacing_delay_s` between them. A question whose answer cannot be
    generated is stored with a placeholder. The run stops early once more
    than half of all questions have failed. If none succeed, every question
    is stored with the manual-practice placeholder instead. A cancelled run
    never switches to manual mode and keeps only the questions it attempted.
    """

    def __init__(
        self,
        gemini: Generator,
        store: QuestionStore,
        *,
        pacing_delay_s: float = 1.0,
        refiner: BulletRefiner | None = None,
    ) -> None:
        self.gemini = gemini
        self.store = store
        self.pacing_delay_s = pacing_delay_s
        self.refiner = refiner or BulletRefiner(gemini)

    def _store(self, record: QuestionRecord) -> QuestionRecord:
        question_id = self.store.create(record)
        self._log_state(record, QuestionState.STORED)
        return dataclasses.replace(record, id=question_id)

    def _log_state(self, record: QuestionRecord, state: QuestionState) -> None:
        logger.debug("Question %r: %s", record.question_text[:40], state.value)

    def _process(self, record: QuestionRecord) -> QuestionRecord:
        self._log_state(record, QuestionState.ANSWER_REQUESTED)
        try:
            answer = self.gemini.generate(answer_prompt(record.question_text))
        except GenerationExhausted as e:
            logger.warning("Answer generation failed for %r: %s", record.question_text[:60], e)
            self._log_state(record, QuestionState.ANSWER_FAILED)
            return dataclasses.replace(record, ai_answer=FAILED_ANSWER, explanation=FAILED_EXPLANATION, failed=True)

        answer = strip_sql_comments(answer)
        self._log_state(record, QuestionState.ANSWER_OBTAINED)
        self._log_state(record, QuestionState.EXPLANATION_REQUESTED)
        explanation = self.refiner.refine(record.question_text, answer)
        if explanation == EXPLANATION_UNAVAILABLE:
            self._log_state(record, QuestionState.EXPLANATION_FAILED)
        else:
            self._log_state(record, QuestionState.EXPLANATION_OBTAINED)
        return dataclasses.replace(record, ai_answer=answer, explanation=explanation)

    def run(
        self,
        text: str,
        source_label: str,
        cancel_event: threading.Event | None = None,
    ) -> PipelineResult:
        segments = segment_questions(text)
        if not segments:
            raise NoQuestionsFound("No questions found in PDF.")
        segments = [dataclasses.replace(s, source_label=source_label) for s in segments]
        total = len(segments)
        logger.info("Segmented %d questions from %r", total, source_label)

        stored: list[QuestionRecord] = []
        buffered: list[QuestionRecord] = []
        succeeded = 0
        failed = 0
        cancelled = False
        stopped_early = False

        for idx, segment in enumerate(segments):
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Pipeline for %r cancelled before question %d", source_label, idx + 1)
                cancelled = True
                break
            if idx > 0 and self.pacing_delay_s > 0:
                time.sleep(self.pacing_delay_s)

            self._log_state(segment, QuestionState.PENDING)
            record = self._process(segment)
            if record.failed:
                failed += 1
            else:
                succeeded += 1

            # Hold records back until something succeeds so manual mode has nothing to undo.
            buffered.append(record)
            if succeeded:
                for pending in buffered:
                    stored.append(self._store(pending))
                buffered = []

            if failed * 2 > total:
                logger.warning("Stopping %r early: %d of %d questions failed", source_label, failed, total)
                stopped_early = True
                break

        if cancelled:
            # Only questions that were actually attempted are kept.
            for pending in buffered:
                stored.append(self._store(pending))
            buffered = []
        elif succeeded == 0 and failed > 0:
            logger.warning("All generation attempts failed for %r; switching to manual practice mode", source_label)
            manual = [
                self._store(dataclasses.replace(s, ai_answer=MANUAL_ANSWER, explanation=MANUAL_EXPLANATION, failed=True))
                for s in segments
            ]
            summary = (
                f"AI generation failed for all questions. Loaded {total} questions in manual practice mode."
            )
            logger.info(summary)
            return PipelineResult(
                questions=manual,
                summary=summary,
                succeeded=0,
                failed=failed,
                manual_mode=True,
                cancelled=cancelled,
            )

        summary = f"Processed {succeeded + failed} of {total} questions: {succeeded} succeeded, {failed} failed."
        if stopped_early:
            summary += f" Stopped early after too many failures; {total - succeeded - failed} questions skipped."
        if cancelled:
            summary += " Processing was cancelled."
        logger.info(summary)
        return PipelineResult(
            questions=stored,
            summary=summary,
            succeeded=succeeded,
            failed=failed,
            cancelled=cancelled,
        )
