"""PDF and image statements via an external extraction oracle.

The oracle is the only collaborator that talks to an inference service. Its
reply is untrusted text: it may be wrapped in a Markdown fence, surrounded by
prose, or truncated mid-object when the model runs out of output tokens.
:func:`parse_extraction_response` recovers what it can and never raises.

No side effects occur at import time (no client creation, no environment
reads).
"""

from __future__ import annotations

import base64
import json
import os
import re
from collections.abc import Callable, Sequence
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Protocol

from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError

from . import prompting
from .categorization import categorize_transaction
from .errors import ExtractionError, UnsupportedMediaTypeError
from .logging_setup import get_logger
from .models import ExtractedTransaction, KeywordSettings, ParsedTransaction
from .normalizers import parse_date

_logger = get_logger("statement_ingest.extraction")

SUPPORTED_DOCUMENT_TYPES: frozenset[str] = frozenset(
    {"application/pdf", "image/jpeg", "image/png", "image/gif", "image/webp"}
)

_MODEL_ENV_VAR = "STATEMENT_INGEST_EXTRACTION_MODEL"
_DEFAULT_MODEL = "gpt-5-mini"
_CENT = Decimal("0.01")


class ExtractionOracle(Protocol):
    """Anything that turns a document into the model's raw text reply."""

    async def extract(self, content: bytes, media_type: str) -> str: ...


# ---- OpenAI-backed oracle ----------------------------------------------------


def _response_text(resp: Any) -> str:
    """Locate the text output of a Responses SDK result.

    Prefers ``resp.output_text`` and falls back to
    ``resp.output[0].content[0].text``. Returns ``""`` when neither exists so
    the caller degrades to an empty candidate list.
    """

    text: str | None = getattr(resp, "output_text", None)
    if text:
        return text
    try:
        first = resp.output[0] if getattr(resp, "output", None) else None
        content = getattr(first, "content", None)
        if content:
            txt_obj = getattr(content[0], "text", None)
            if isinstance(txt_obj, str):
                return txt_obj
            maybe_val = getattr(txt_obj, "value", None)
            if isinstance(maybe_val, str):
                return maybe_val
    except (AttributeError, IndexError, TypeError):
        pass
    return ""


def _document_part(content: bytes, media_type: str) -> dict[str, Any]:
    data_url = f"data:{media_type};base64,{base64.b64encode(content).decode('ascii')}"
    if media_type == "application/pdf":
        return {"type": "input_file", "filename": "statement.pdf", "file_data": data_url}
    return {"type": "input_image", "image_url": data_url, "detail": "high"}


class OpenAIExtractionOracle:
    """Extraction oracle backed by the OpenAI Responses API.

    One request per document, no retry: a transport failure surfaces as
    :class:`ExtractionError` and the user re-uploads.
    """

    def __init__(self, client: AsyncOpenAI | None = None, *, model: str | None = None) -> None:
        self._client = client
        self._model = model or os.getenv(_MODEL_ENV_VAR) or _DEFAULT_MODEL

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI()
        return self._client

    async def extract(self, content: bytes, media_type: str) -> str:
        if media_type not in SUPPORTED_DOCUMENT_TYPES:
            raise UnsupportedMediaTypeError(f"Unsupported document type: {media_type}")

        user_content = [
            _document_part(content, media_type),
            {"type": "input_text", "text": "Extract the transactions from this statement."},
        ]
        _logger.info(
            "extract:request model=%s media_type=%s bytes=%d",
            self._model,
            media_type,
            len(content),
        )
        try:
            resp = await self._get_client().responses.create(
                model=self._model,
                instructions=prompting.build_extraction_instructions(),
                input=[{"role": "user", "content": user_content}],
            )
        except OpenAIError as exc:
            _logger.error("extract:failed model=%s error=%s", self._model, exc)
            raise ExtractionError(f"Extraction request failed: {exc}") from exc
        return _response_text(resp)


# ---- Response recovery -------------------------------------------------------

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")


def _strip_fences(text: str) -> str:
    s = text.strip()
    m = _FENCE_RE.search(s)
    return m.group(1).strip() if m else s


def _complete_array(text: str) -> str | None:
    start, end = text.find("["), text.rfind("]")
    if start == -1 or end <= start:
        return None
    return text[start : end + 1]


def _repair_truncated_array(text: str) -> str | None:
    # Cut after the last closing brace and close the array.
    start = text.find("[")
    if start == -1:
        return None
    last_brace = text.rfind("}")
    if last_brace <= start:
        return None
    return text[start : last_brace + 1] + "]"


# Tried in order; the first candidate that decodes to a JSON array wins.
RECOVERY_STRATEGIES: tuple[tuple[str, Callable[[str], str | None]], ...] = (
    ("complete_array", _complete_array),
    ("truncation_repair", _repair_truncated_array),
)


def _valid_candidates(items: Sequence[Any]) -> list[ExtractedTransaction]:
    out: list[ExtractedTransaction] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            out.append(ExtractedTransaction.model_validate(item))
        except ValidationError:
            continue
    if len(out) < len(items):
        _logger.debug("parse_extraction_response:discarded count=%d", len(items) - len(out))
    return out


def parse_extraction_response(text: str) -> list[ExtractedTransaction]:
    """Recover candidate transactions from a raw oracle reply.

    Candidates missing a date, a description or a numeric amount are
    discarded. Returns ``[]`` when no strategy yields a JSON array.
    """

    body = _strip_fences(text or "")
    for name, strategy in RECOVERY_STRATEGIES:
        candidate = strategy(body)
        if candidate is None:
            continue
        try:
            decoded = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if not isinstance(decoded, list):
            continue
        if name != "complete_array":
            _logger.info(
                "parse_extraction_response:repaired strategy=%s items=%d", name, len(decoded)
            )
        return _valid_candidates(decoded)

    _logger.warning("parse_extraction_response:no_array preview=%r", (text or "")[:200])
    return []


# ---- Pipeline ----------------------------------------------------------------


def to_parsed_transactions(
    candidates: Sequence[ExtractedTransaction],
    keyword_settings: KeywordSettings | None = None,
) -> list[ParsedTransaction]:
    """Normalize and categorize oracle candidates like CSV rows.

    A candidate whose date does not parse is dropped.
    """

    out: list[ParsedTransaction] = []
    for idx, c in enumerate(candidates):
        try:
            tx_date = parse_date(c.date)
            amount = c.amount.quantize(_CENT, rounding=ROUND_HALF_UP)
        except (ValueError, InvalidOperation):
            _logger.debug("to_parsed_transactions:dropped index=%d date=%r", idx, c.date)
            continue
        out.append(
            ParsedTransaction(
                date=tx_date,
                description=c.description,
                amount=amount,
                type=c.type,
                category=categorize_transaction(c.description, keyword_settings),
            )
        )
    return out


async def extract_transactions(
    content: bytes,
    media_type: str,
    *,
    oracle: ExtractionOracle,
    keyword_settings: KeywordSettings | None = None,
) -> list[ParsedTransaction]:
    """Send a PDF or image to ``oracle`` and return categorized candidates.

    Raises :class:`UnsupportedMediaTypeError` for other media types and lets
    :class:`ExtractionError` from the oracle propagate. A malformed reply is
    not an error: it yields fewer (or zero) transactions.
    """

    if media_type not in SUPPORTED_DOCUMENT_TYPES:
        raise UnsupportedMediaTypeError(f"Unsupported document type: {media_type}")

    raw = await oracle.extract(content, media_type)
    candidates = parse_extraction_response(raw)
    transactions = to_parsed_transactions(candidates, keyword_settings)
    _logger.info(
        "extract_transactions:done media_type=%s candidates=%d transactions=%d",
        media_type,
        len(candidates),
        len(transactions),
    )
    return transactions


__all__ = [
    "ExtractionOracle",
    "OpenAIExtractionOracle",
    "RECOVERY_STRATEGIES",
    "SUPPORTED_DOCUMENT_TYPES",
    "extract_transactions",
    "parse_extraction_response",
    "to_parsed_transactions",
]
