import logging
import os

from flask import Flask, jsonify, request

import set_env_vars
from backend.mongo import connect
from backend.question_store import QuestionStore
from reansql.config import Settings
from reansql.errors import (
    ExtractionFailure,
    GenerationExhausted,
    NoCredentialsError,
    NoQuestionsFound,
    StorageFailure,
)
from reansql.file_utils import FileUtils
from reansql.gemini import GeminiClient
from reansql.grading import is_match, reference_sql
from reansql.pipeline import PracticePipeline

set_env_vars.initialize_env_vars()
settings = Settings.from_env()

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("reansql.server")

server = Flask(__name__, static_folder="frontend/dist", static_url_path="")
mongo = connect()
store = QuestionStore(mongo)
file_utils = FileUtils()

try:
    gemini = GeminiClient.from_settings(settings)
except NoCredentialsError as e:
    logger.error("AI features disabled: %s", e)
    gemini = None

pipeline = PracticePipeline(gemini, store, pacing_delay_s=settings.pacing_delay_s) if gemini else None

HINT_SQL_LIMIT = 200


def hint_prompt(question_text: str, user_sql: str) -> str:
    short_sql = (user_sql or "")[:HINT_SQL_LIMIT]
    prompt = f'You are an SQL tutor. Give a concise, helpful hint for this SQL question :\n"{question_text}"'
    if short_sql:
        prompt += f"\nUser's attempt (truncated): {short_sql}"
    return prompt


@server.route("/api/hello")
def hello():
    return jsonify({"message": "API Working!"})


@server.route("/api/uploadPdf", methods=["POST"])
def upload_pdf():
    if "file" not in request.files:
        return jsonify({"error": "No file provided"}), 400
    if not pipeline:
        return jsonify({"error": "AI module not initialized"}), 500

    upload = request.files["file"]
    source_label = request.form.get("sourceLabel") or upload.filename or "upload.pdf"

    try:
        text = file_utils.extract_text_from_pdf_bytes(upload.read())
    except ExtractionFailure as e:
        logger.warning("Failed to parse %s: %s", source_label, e)
        return jsonify({"error": "Failed to parse PDF"}), 500

    try:
        result = pipeline.run(text, source_label)
    except NoQuestionsFound:
        return jsonify({"error": "No questions found in PDF.", "questions": []}), 422
    except StorageFailure as e:
        logger.error("Storage failed while processing %s: %s", source_label, e)
        return jsonify({"error": "Failed to save questions"}), 500

    payload = result.to_dict()
    payload["sourceLabel"] = source_label
    return jsonify(payload)


@server.route("/api/questions", methods=["GET"])
def list_questions():
    try:
        questions = store.list_by_source(request.args.get("sourceLabel"))
    except StorageFailure as e:
        logger.error("Error fetching questions: %s", e)
        return jsonify({"error": "Failed to fetch questions"}), 500
    return jsonify({"questions": questions})


@server.route("/api/questions/<questionID>", methods=["GET"])
def get_question(questionID):
    try:
        doc = store.get(questionID)
    except StorageFailure as e:
        logger.error("Error fetching question %s: %s", questionID, e)
        return jsonify({"error": "Failed to fetch question"}), 500
    if not doc:
        return jsonify({"error": "Question not found"}), 404
    return jsonify(doc)


@server.route("/api/submitAnswer/<questionID>", methods=["POST"])
def submit_answer(questionID):
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        payload = {}
    user_answer = payload.get("answer") or request.form.get("answer")
    if not isinstance(user_answer, str) or not user_answer.strip():
        return jsonify({"error": "No answer provided"}), 400

    try:
        question = store.get(questionID)
        if not question:
            return jsonify({"error": "Question not found"}), 404
        correct_answer = reference_sql(question.get("aiAnswer", ""))
        is_correct = is_match(user_answer, correct_answer)
        submission = store.record_submission(questionID, user_answer, is_correct)
    except StorageFailure as e:
        logger.error("Error saving submission for %s: %s", questionID, e)
        return jsonify({"error": "Failed to save submission"}), 500

    return jsonify({
        "isCorrect": is_correct,
        "correctAnswer": correct_answer,
        "attemptCount": submission["attemptCount"],
    })


@server.route("/api/progress", methods=["GET"])
def get_progress():
    try:
        progress = store.progress(request.args.get("sourceLabel"))
    except StorageFailure as e:
        logger.error("Error fetching progress: %s", e)
        return jsonify({"error": "Failed to fetch progress"}), 500
    return jsonify({
        "progress": progress,
        "correct": sum(1 for p in progress if p["status"] == "correct"),
        "total": len(progress),
    })


@server.route("/api/ai", methods=["POST"])
def ai():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        payload = {}
    kind = payload.get("type")
    if not kind:
        return jsonify({"error": "Missing type in request body"}), 400

    if kind == "hint":
        if not gemini:
            return jsonify({"error": "AI module not initialized"}), 500
        question_text = payload.get("questionText")
        user_sql = payload.get("userSql")
        if not isinstance(question_text, str) or not question_text.strip():
            return jsonify({"error": "Missing questionText"}), 400
        try:
            hint = gemini.generate(hint_prompt(question_text, user_sql if isinstance(user_sql, str) else ""))
        except GenerationExhausted as e:
            logger.error("Hint generation failed: %s", e)
            return jsonify({"error": "Failed to get hint from Gemini."}), 502
        return jsonify({"hint": hint or "No hint available."})

    if kind == "chat":
        return jsonify({"message": "Chat feature coming soon."})

    return jsonify({"error": "Unknown type in request body"}), 400


@server.route("/", defaults={"path": ""})
@server.route("/<path:path>")
def spa(path):
    if path.startswith("api"):
        return jsonify({"error": "API route not found"}), 404

    return server.send_static_file("index.html")


if __name__ == '__main__':
    server.run(port=int(os.environ.get("PORT", 8080)))
