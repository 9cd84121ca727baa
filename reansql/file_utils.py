from __future__ import annotations

import io
import logging
import re

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from reansql.errors import ExtractionFailure

logger = logging.getLogger(__name__)


class FileUtils:
    def read_bytes(self, path: str) -> bytes:
        with open(path, "rb") as f:
            return f.read()

    def extract_text_from_pdf(self, pdf_path: str) -> str:
        return self.extract_text_from_pdf_bytes(self.read_bytes(pdf_path))

    def extract_text_from_pdf_bytes(self, pdf_bytes: bytes) -> str:
        if not pdf_bytes:
            raise ExtractionFailure("Uploaded file is empty.")
        try:
            reader = PdfReader(io.BytesIO(pdf_bytes))
            page_count = len(reader.pages)
            texts: list[str] = []
            for page in reader.pages:
                t0 = page.extract_text() or ""
                if t0.strip():
                    texts.append(t0)
        except (PyPdfError, ValueError, KeyError, TypeError) as e:
            logger.warning("pypdf could not read upload: %s", e)
            raise ExtractionFailure("Failed to parse PDF") from e
        logger.info("Extracted text from %d of %d PDF pages", len(texts), page_count)
        return self._normalize_extracted_text("\n\n".join(texts))

    def _normalize_extracted_text(self, text: str) -> str:
        s = text.replace("\r\n", "\n").replace("\r", "\n")
        s = re.sub(r"[ \t]+\n", "\n", s)
        s = re.sub(r"\n{3,}", "\n\n", s)
        s = re.sub(r"[ \t]{2,}", " ", s)
        return s.strip()
