from __future__ import annotations

import re

WHITESPACE_RE = re.compile(r"[\s\u00a0]+")
STRIPPED_CHARS_RE = re.compile(r"[;\"'`]")
CODE_BLOCK_RE = re.compile(r"```(?:sql)?[ \t]*\n([\s\S]*?)```", re.IGNORECASE)


def normalize_sql(text: str) -> str:
    # Quotes are dropped too, so string literals that differ only in quoting compare equal.
    s = WHITESPACE_RE.sub("", text or "")
    s = STRIPPED_CHARS_RE.sub("", s)
    return s.lower()


def is_match(user_text: str, reference_text: str) -> bool:
    return normalize_sql(user_text) == normalize_sql(reference_text)


def extract_first_code_block(markdown: str) -> tuple[str, str]:
    """Return (code, explanation) for the first fenced block in `markdown`.

    The explanation is the text before and after the block. Without a fenced
    block the code is empty and the whole input is the explanation.
    """
    markdown = markdown or ""
    match = CODE_BLOCK_RE.search(markdown)
    if not match:
        return "", markdown
    code = match.group(1).strip()
    before = markdown[: match.start()].strip()
    after = markdown[match.end() :].strip()
    return code, "\n\n".join(p for p in (before, after) if p)


def reference_sql(ai_answer: str) -> str:
    code, _ = extract_first_code_block(ai_answer)
    return code or (ai_answer or "").strip()
