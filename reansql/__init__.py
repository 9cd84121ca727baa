from reansql.errors import (
    ExtractionFailure,
    GenerationExhausted,
    NoQuestionsFound,
    StorageFailure,
)

__all__ = [
    "ExtractionFailure",
    "GenerationExhausted",
    "NoQuestionsFound",
    "StorageFailure",
]
