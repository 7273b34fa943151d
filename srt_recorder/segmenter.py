"""Split source text into subtitle sentences, via OpenAI with a regex fallback."""

import json
import logging
import os
import re

from openai import AsyncOpenAI

from srt_recorder.constants import AI_MODEL, OPENAI_API_KEY_ENV

logger = logging.getLogger(__name__)

# One sentence: run of non-terminators + terminators + optional closing quote,
# or whatever trails at the end of the paragraph.
_SENTENCE_RE = re.compile(r"""[^.!?]+[.!?]+["']?|.+$""")

SYSTEM_PROMPT = (
    "Split the user's text into individual sentences. "
    "Each item must be exactly one full sentence. "
    "Do not split a single sentence into multiple parts, even if it is long. "
    "Do not combine multiple sentences into one item. "
    "Preserve all original punctuation and wording exactly. "
    "Treat newlines (paragraphs) in the source text as hard breaks; "
    "never merge text from different paragraphs. "
    'Return a JSON object of the form {"sentences": ["...", "..."]}.'
)


def fallback_split(text: str) -> list[str]:
    """Deterministic rule-based sentence split.

    Paragraph (newline) boundaries first, then sentence punctuation within
    each paragraph. Blank lines are dropped.
    """
    sentences = []
    for paragraph in re.split(r"\r?\n", text):
        if not paragraph.strip():
            continue
        parts = [s.strip() for s in _SENTENCE_RE.findall(paragraph)]
        parts = [s for s in parts if s]
        sentences.extend(parts or [paragraph.strip()])
    return sentences


def _squash(text: str) -> str:
    return "".join(text.split())


def _fits_paragraphs(sentences: list[str], text: str) -> bool:
    """True if the sentences, in order, tile each paragraph of text exactly.

    Wording must survive verbatim (whitespace aside) and no sentence may
    straddle a newline.
    """
    paragraphs = [_squash(p) for p in re.split(r"\r?\n", text) if p.strip()]
    pos = 0
    for paragraph in paragraphs:
        run = ""
        while len(run) < len(paragraph) and pos < len(sentences):
            run += _squash(sentences[pos])
            pos += 1
        if run != paragraph:
            return False
    return pos == len(sentences)


def _parse_response(content: str | None, text: str) -> list[str] | None:
    """Validate the model output; None means it cannot be trusted."""
    if not content:
        return None
    try:
        data = json.loads(content)
    except json.JSONDecodeError:
        return None
    if isinstance(data, dict):
        data = data.get("sentences")
    if not isinstance(data, list) or not all(isinstance(s, str) for s in data):
        return None
    sentences = [s.strip() for s in data if s.strip()]
    if not sentences:
        return None
    if any("\n" in s or "\r" in s for s in sentences):
        return None
    if not _fits_paragraphs(sentences, text):
        return None
    return sentences


async def segment_text(
    text: str,
    client: AsyncOpenAI | None = None,
    model: str = AI_MODEL,
) -> list[str]:
    """Split text into sentences. Never raises for service failures.

    Uses the OpenAI chat API when a client is given or OPENAI_API_KEY is set,
    otherwise (or on any failure) returns fallback_split(text).
    """
    if not text.strip():
        return []

    if client is None:
        if not os.environ.get(OPENAI_API_KEY_ENV):
            logger.warning("No %s set; using rule-based sentence split", OPENAI_API_KEY_ENV)
            return fallback_split(text)
        client = AsyncOpenAI()

    try:
        response = await client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": text},
            ],
            response_format={"type": "json_object"},
            temperature=0,
        )
        content = response.choices[0].message.content
    except Exception as e:
        logger.warning("AI segmentation failed: %s; using rule-based split", e)
        return fallback_split(text)

    sentences = _parse_response(content, text)
    if sentences is None:
        logger.warning("AI segmentation returned unusable output; using rule-based split")
        return fallback_split(text)
    return sentences
