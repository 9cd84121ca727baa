from __future__ import annotations

import dataclasses
import datetime as dt
import typing as t

JsonDict = dict[str, t.Any]


@dataclasses.dataclass(frozen=True)
class QuestionRecord:
    question_text: str
    source_label: str = ""
    ai_answer: str = ""
    explanation: str = ""
    failed: bool = False
    id: str | None = None

    def to_document(self) -> JsonDict:
        return {
            "sourceLabel": self.source_label,
            "questionText": self.question_text,
            "aiAnswer": self.ai_answer,
            "explanation": self.explanation,
            "failed": self.failed,
            "createdAt": dt.datetime.now(dt.timezone.utc),
        }

    def to_dict(self) -> JsonDict:
        return {
            "_id": self.id,
            "sourceLabel": self.source_label,
            "questionText": self.question_text,
            "aiAnswer": self.ai_answer,
            "explanation": self.explanation,
            "failed": self.failed,
        }

    @staticmethod
    def from_document(doc: JsonDict) -> "QuestionRecord":
        return QuestionRecord(
            id=str(doc["_id"]) if doc.get("_id") is not None else None,
            source_label=str(doc.get("sourceLabel") or ""),
            question_text=str(doc.get("questionText") or ""),
            ai_answer=str(doc.get("aiAnswer") or ""),
            explanation=str(doc.get("explanation") or ""),
            failed=bool(doc.get("failed", False)),
        )
