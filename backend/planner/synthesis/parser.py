import json
import logging
import re
from typing import Any, TypeVar

from planner.synthesis.artifacts import (
    CandidateModel,
    DependencyEntry,
    ExtractedSystem,
    ExtractedSystemDetail,
    ParsedSynthesis,
)

logger = logging.getLogger(__name__)

C = TypeVar("C", bound=CandidateModel)

_FENCED_BLOCK_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_KEY_RE_TEMPLATE = r'"{key}"\s*:\s*(?=\[)'
_LAZY_ARRAY_RE_TEMPLATE = r'"{key}"\s*:\s*(\[[\s\S]*?\])\s*[,}}]'


def _extract_fenced_block(text: str) -> str | None:
    match = _FENCED_BLOCK_RE.search(text)
    return match.group(1).strip() if match else None


def _find_balanced_end(text: str, start: int) -> int:
    """
    Index of the bracket closing the one at `start`, or -1.
    Brackets inside string literals (escapes honoured) do not count.
    """
    depth = 0
    in_string = False
    escape = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch in "{[":
            depth += 1
        elif ch in "}]":
            depth -= 1
            if depth == 0:
                return i
    return -1


def _loads(text: str) -> Any:
    return json.loads(text, strict=False)


def _parse_direct(text: str) -> dict[str, Any] | None:
    candidate = _extract_fenced_block(text) or text.strip()
    try:
        parsed = _loads(candidate)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _has_candidate_keys(obj: dict[str, Any]) -> bool:
    return isinstance(obj.get("extractedSystems"), list) or isinstance(
        obj.get("extractedSystemDetails"), list
    )


def _parse_embedded(text: str) -> dict[str, Any] | None:
    """
    Walk every complete top-level object in the text. When the model echoes the
    example before answering, the object with the most systems wins (ties go to
    the later one).
    """
    best: dict[str, Any] | None = None
    best_count = -1
    search_from = 0
    while True:
        start = text.find("{", search_from)
        if start == -1:
            break
        end = _find_balanced_end(text, start)
        if end == -1:
            break
        try:
            parsed = _loads(text[start:end + 1])
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict) and _has_candidate_keys(parsed):
            systems = parsed.get("extractedSystems")
            count = len(systems) if isinstance(systems, list) else 0
            if count >= best_count:
                best, best_count = parsed, count
        search_from = end + 1
    return best


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Any JSON object in a model reply: the whole reply first, then the first embedded object."""
    text = text or ""
    obj = _parse_direct(text)
    if obj is not None:
        return obj
    search_from = 0
    while True:
        start = text.find("{", search_from)
        if start == -1:
            return None
        end = _find_balanced_end(text, start)
        if end == -1:
            return None
        try:
            parsed = _loads(text[start:end + 1])
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict):
            return parsed
        search_from = start + 1


def _extract_array(text: str, key: str) -> list[Any]:
    key_match = re.search(_KEY_RE_TEMPLATE.format(key=re.escape(key)), text)
    if key_match:
        start = key_match.end()
        end = _find_balanced_end(text, start)
        if end != -1:
            try:
                parsed = _loads(text[start:end + 1])
                if isinstance(parsed, list):
                    return parsed
            except json.JSONDecodeError:
                pass

    lazy_match = re.search(_LAZY_ARRAY_RE_TEMPLATE.format(key=re.escape(key)), text)
    if not lazy_match:
        return []
    try:
        parsed = _loads(lazy_match.group(1))
    except json.JSONDecodeError:
        return []
    return parsed if isinstance(parsed, list) else []


def _coerce_candidates(items: Any, model: type[C]) -> list[C]:
    if not isinstance(items, list):
        return []
    candidates: list[C] = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            logger.warning("Dropping non-object %s candidate at index %s", model.__name__, index)
            continue
        candidates.append(model.model_validate(item))
    return candidates


def parse_synthesis_response(content: str) -> ParsedSynthesis:
    """
    Recover candidate systems and details from a model reply.

    Tiers run in order and stop at the first success: direct JSON (after
    stripping a code fence), embedded object via bracket matching, then
    per-key array extraction. Never raises.
    """
    text = content or ""

    obj = _parse_direct(text)
    mode = "json"
    if obj is None:
        obj = _parse_embedded(text)
        mode = "embedded"

    if obj is not None:
        return ParsedSynthesis(
            extracted_systems=_coerce_candidates(obj.get("extractedSystems"), ExtractedSystem),
            extracted_system_details=_coerce_candidates(
                obj.get("extractedSystemDetails"), ExtractedSystemDetail
            ),
            suggested_systems=_coerce_candidates(obj.get("suggestedSystems"), ExtractedSystem),
            suggested_system_details=_coerce_candidates(
                obj.get("suggestedSystemDetails"), ExtractedSystemDetail
            ),
            raw_content=text,
            parse_mode=mode,
        )

    systems = _coerce_candidates(_extract_array(text, "extractedSystems"), ExtractedSystem)
    details = _coerce_candidates(_extract_array(text, "extractedSystemDetails"), ExtractedSystemDetail)
    if not systems and not details:
        logger.warning("Synthesis response could not be parsed; keeping raw content only (%s chars)", len(text))
        return ParsedSynthesis(raw_content=text, parse_mode="none")

    logger.info("Recovered synthesis candidates through per-key extraction")
    return ParsedSynthesis(
        extracted_systems=systems,
        extracted_system_details=details,
        raw_content=text,
        parse_mode="regex",
    )


def normalize_dependency_entry(entry: str | DependencyEntry | dict[str, Any]) -> DependencyEntry:
    if isinstance(entry, DependencyEntry):
        description = (entry.description or "").strip() or None
        return DependencyEntry(slug=entry.slug, description=description)
    if isinstance(entry, str):
        return DependencyEntry(slug=entry)
    description = entry.get("description")
    description = description.strip() if isinstance(description, str) else None
    return DependencyEntry(slug=str(entry.get("slug", "")), description=description or None)
