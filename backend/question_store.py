from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Optional

import bson
from bson import ObjectId
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from reansql.errors import StorageFailure
from reansql.records import QuestionRecord


def _object_id(value: str) -> Optional[ObjectId]:
    try:
        return ObjectId(value)
    except (bson.errors.InvalidId, TypeError):
        return None


def _serialize(doc: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(doc)
    if "_id" in out:
        out["_id"] = str(out["_id"])
    for key in ("createdAt", "submittedAt"):
        if isinstance(out.get(key), dt.datetime):
            out[key] = out[key].isoformat()
    return out


class QuestionStore:
    """MongoDB-backed storage for questions and answer submissions."""

    def __init__(self, db: Any) -> None:
        self.questions = db.questions
        self.submissions = db.submissions

    def create(self, record: QuestionRecord) -> str:
        try:
            result = self.questions.insert_one(record.to_document())
        except PyMongoError as exc:
            raise StorageFailure(f"Failed to save question: {exc}") from exc
        return str(result.inserted_id)

    def list_by_source(self, source_label: Optional[str] = None) -> List[Dict[str, Any]]:
        query = {"sourceLabel": source_label} if source_label else {}
        try:
            docs = self.questions.find(query).sort([("createdAt", ASCENDING), ("_id", ASCENDING)])
            return [_serialize(doc) for doc in docs]
        except PyMongoError as exc:
            raise StorageFailure(f"Failed to fetch questions: {exc}") from exc

    def get(self, question_id: str) -> Optional[Dict[str, Any]]:
        obj_id = _object_id(question_id)
        if obj_id is None:
            return None
        try:
            doc = self.questions.find_one({"_id": obj_id})
        except PyMongoError as exc:
            raise StorageFailure(f"Failed to fetch question: {exc}") from exc
        return _serialize(doc) if doc else None

    def record_submission(self, question_id: str, submitted_code: str, is_correct: bool) -> Dict[str, Any]:
        try:
            previous = self.submissions.count_documents({"questionId": question_id})
            submission = {
                "questionId": question_id,
                "submittedCode": submitted_code,
                "isCorrect": is_correct,
                "attemptCount": previous + 1,
                "submittedAt": dt.datetime.now(dt.timezone.utc),
            }
            result = self.submissions.insert_one(submission)
        except PyMongoError as exc:
            raise StorageFailure(f"Failed to save submission: {exc}") from exc
        submission["_id"] = result.inserted_id
        return _serialize(submission)

    def progress(self, source_label: Optional[str] = None) -> List[Dict[str, Any]]:
        questions = self.list_by_source(source_label)
        out = []
        for q in questions:
            try:
                latest = self.submissions.find_one(
                    {"questionId": q["_id"]},
                    sort=[("submittedAt", DESCENDING), ("_id", DESCENDING)],
                )
            except PyMongoError as exc:
                raise StorageFailure(f"Failed to fetch submissions: {exc}") from exc
            if latest is None:
                status = "unattempted"
            else:
                status = "correct" if latest.get("isCorrect") else "incorrect"
            out.append({
                "questionId": q["_id"],
                "questionText": q.get("questionText", ""),
                "status": status,
            })
        return out
