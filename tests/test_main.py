import unittest
from unittest.mock import MagicMock, patch
import sys
import os
import json
from io import BytesIO

# Mocking the Mongo connection before importing main
sys.modules["backend.mongo"] = MagicMock()

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import main
from reansql.errors import ExtractionFailure, GenerationExhausted, NoQuestionsFound, StorageFailure
from reansql.pipeline import PipelineResult
from reansql.records import QuestionRecord


class TestMain(unittest.TestCase):
    def setUp(self):
        self.app = main.server.test_client()
        self.app.testing = True

        self.mock_store = MagicMock()
        self.mock_pipeline = MagicMock()
        self.mock_gemini = MagicMock()
        self.mock_files = MagicMock()
        patchers = [
            patch.object(main, "store", self.mock_store),
            patch.object(main, "pipeline", self.mock_pipeline),
            patch.object(main, "gemini", self.mock_gemini),
            patch.object(main, "file_utils", self.mock_files),
        ]
        for p in patchers:
            p.start()
            self.addCleanup(p.stop)

    def upload(self, **form):
        data = {"file": (BytesIO(b"%PDF-1.4 fake"), "sheet.pdf")}
        data.update(form)
        return self.app.post("/api/uploadPdf", data=data, content_type="multipart/form-data")

    def test_upload_pdf(self):
        self.mock_files.extract_text_from_pdf_bytes.return_value = "1. List rows"
        self.mock_pipeline.run.return_value = PipelineResult(
            questions=[QuestionRecord(question_text="1. List rows", source_label="sheet.pdf", ai_answer="SELECT *", explanation="x\n- y", id="abc")],
            summary="Processed 1 of 1 questions: 1 succeeded, 0 failed.",
            succeeded=1,
            failed=0,
        )

        response = self.upload()

        self.assertEqual(response.status_code, 200)
        data = json.loads(response.data)
        self.assertEqual(data["sourceLabel"], "sheet.pdf")
        self.assertEqual(data["questions"][0]["_id"], "abc")
        self.assertEqual(data["questions"][0]["questionText"], "1. List rows")
        self.assertFalse(data["manualMode"])
        self.assertIn("1 succeeded", data["message"])
        self.mock_pipeline.run.assert_called_once_with("1. List rows", "sheet.pdf")

    def test_upload_uses_explicit_source_label(self):
        self.mock_files.extract_text_from_pdf_bytes.return_value = "1. q"
        self.mock_pipeline.run.return_value = PipelineResult(questions=[], summary="", succeeded=0, failed=0)

        self.upload(sourceLabel="week-3")

        self.assertEqual(self.mock_pipeline.run.call_args[0][1], "week-3")

    def test_upload_without_file(self):
        response = self.app.post("/api/uploadPdf", data={}, content_type="multipart/form-data")
        self.assertEqual(response.status_code, 400)

    def test_upload_unparsable_pdf(self):
        self.mock_files.extract_text_from_pdf_bytes.side_effect = ExtractionFailure("bad pdf")

        response = self.upload()

        self.assertEqual(response.status_code, 500)
        self.assertEqual(json.loads(response.data)["error"], "Failed to parse PDF")
        self.mock_pipeline.run.assert_not_called()

    def test_upload_no_questions(self):
        self.mock_files.extract_text_from_pdf_bytes.return_value = "just prose"
        self.mock_pipeline.run.side_effect = NoQuestionsFound("none")

        response = self.upload()

        self.assertEqual(response.status_code, 422)
        self.assertEqual(json.loads(response.data)["error"], "No questions found in PDF.")

    def test_upload_storage_failure(self):
        self.mock_files.extract_text_from_pdf_bytes.return_value = "1. q"
        self.mock_pipeline.run.side_effect = StorageFailure("down")

        response = self.upload()

        self.assertEqual(response.status_code, 500)

    def test_upload_without_ai(self):
        with patch.object(main, "pipeline", None):
            response = self.upload()
        self.assertEqual(response.status_code, 500)

    def test_list_questions(self):
        self.mock_store.list_by_source.return_value = [{"_id": "1", "questionText": "1. q"}]

        response = self.app.get("/api/questions?sourceLabel=sheet.pdf")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(json.loads(response.data)["questions"][0]["_id"], "1")
        self.mock_store.list_by_source.assert_called_once_with("sheet.pdf")

    def test_get_question_not_found(self):
        self.mock_store.get.return_value = None
        response = self.app.get("/api/questions/missing")
        self.assertEqual(response.status_code, 404)

    def test_submit_answer_correct(self):
        self.mock_store.get.return_value = {
            "_id": "qid",
            "aiAnswer": "Here you go:\n```sql\nSELECT * FROM t;\n```",
        }
        self.mock_store.record_submission.return_value = {"attemptCount": 1}

        response = self.app.post("/api/submitAnswer/qid", json={"answer": "select *\nfrom t"})

        self.assertEqual(response.status_code, 200)
        data = json.loads(response.data)
        self.assertTrue(data["isCorrect"])
        self.assertEqual(data["correctAnswer"], "SELECT * FROM t;")
        self.assertEqual(data["attemptCount"], 1)
        self.mock_store.record_submission.assert_called_once_with("qid", "select *\nfrom t", True)

    def test_submit_answer_incorrect(self):
        self.mock_store.get.return_value = {"_id": "qid", "aiAnswer": "SELECT a FROM t"}
        self.mock_store.record_submission.return_value = {"attemptCount": 2}

        response = self.app.post("/api/submitAnswer/qid", data={"answer": "SELECT b FROM t"})

        data = json.loads(response.data)
        self.assertFalse(data["isCorrect"])
        self.assertEqual(data["attemptCount"], 2)

    def test_submit_answer_missing(self):
        response = self.app.post("/api/submitAnswer/qid", json={})
        self.assertEqual(response.status_code, 400)

    def test_submit_answer_must_be_text(self):
        for body in ({"answer": 5}, {"answer": ["SELECT 1"]}, ["SELECT 1"]):
            response = self.app.post("/api/submitAnswer/qid", json=body)
            self.assertEqual(response.status_code, 400)
            self.assertEqual(json.loads(response.data)["error"], "No answer provided")
        self.mock_store.record_submission.assert_not_called()

    def test_progress(self):
        self.mock_store.progress.return_value = [
            {"questionId": "1", "questionText": "1. a", "status": "correct"},
            {"questionId": "2", "questionText": "2. b", "status": "unattempted"},
        ]

        data = json.loads(self.app.get("/api/progress").data)

        self.assertEqual(data["correct"], 1)
        self.assertEqual(data["total"], 2)

    def test_hint(self):
        self.mock_gemini.generate.return_value = "Try a GROUP BY."

        response = self.app.post("/api/ai", json={
            "type": "hint",
            "questionText": "Count orders per customer",
            "userSql": "SELECT " + "x" * 500,
        })

        self.assertEqual(response.status_code, 200)
        self.assertEqual(json.loads(response.data)["hint"], "Try a GROUP BY.")
        prompt = self.mock_gemini.generate.call_args[0][0]
        self.assertIn("Count orders per customer", prompt)
        self.assertIn("x" * 193, prompt)
        self.assertNotIn("x" * 194, prompt)

    def test_hint_generation_failure(self):
        self.mock_gemini.generate.side_effect = GenerationExhausted("all keys failed")
        response = self.app.post("/api/ai", json={"type": "hint", "questionText": "q"})
        self.assertEqual(response.status_code, 502)

    def test_ai_chat_and_unknown_types(self):
        chat = self.app.post("/api/ai", json={"type": "chat"})
        self.assertEqual(json.loads(chat.data)["message"], "Chat feature coming soon.")
        self.assertEqual(self.app.post("/api/ai", json={"type": "poem"}).status_code, 400)
        self.assertEqual(self.app.post("/api/ai", json={}).status_code, 400)

    def test_hint_rejects_non_text_fields(self):
        self.assertEqual(self.app.post("/api/ai", json={"type": "hint", "questionText": 7}).status_code, 400)
        self.assertEqual(self.app.post("/api/ai", json=["hint"]).status_code, 400)
        self.mock_gemini.generate.assert_not_called()

    def test_unknown_api_route(self):
        response = self.app.get("/api/doesNotExist")
        self.assertEqual(response.status_code, 404)


if __name__ == "__main__":
    unittest.main()
