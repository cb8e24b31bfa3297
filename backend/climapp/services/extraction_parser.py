"""
Climapp Backend: Model Output Parser
=====================================

What:  Turns the extraction model's raw text into a ParsedExtraction.
How:   Two explicit stages:
         1. Strict json.loads of the whole output      → outcome "clean"
         2. First balanced top-level {...} span found by a string-aware
            brace scan, parsed with json.loads        → outcome "recovered"
       If neither yields a JSON object, ParseError (503 MALFORMED_AI_RESPONSE).

Stage 2 exists because models sometimes wrap the object in prose ("Aqui
está o JSON: ...") or a ```json fence even when told not to.

Item normalisation:
    {"item_1": "capacitor 35uF", "quantidade": 2, "confianca": "95"}
    → ExtractedItem(kind=material, key="item_1", name="capacitor 35uF",
                    quantity="2", confidence=95)

    - The name is taken from the first key shaped like item_N / servico_N;
      failing that from nome / descricao / name. Entries with no usable
      name are skipped. The name text itself is never altered.
    - Missing or non-list arrays become [].
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from climapp.exceptions import ParseError
from climapp.schemas.extraction import ExtractedItem, ItemKind, ParsedExtraction, ParseOutcome
from climapp.services.confidence_filter import coerce_confidence

logger = logging.getLogger(__name__)

ITEM_KEY_PATTERN = re.compile(r"^(item|servico)_\d+$")
FALLBACK_NAME_KEYS = ("nome", "descricao", "name")
QUANTITY_KEYS = ("quantidade", "quantity")
CONFIDENCE_KEYS = ("confianca", "confidence")

_KEY_PREFIX = {ItemKind.MATERIAL: "item", ItemKind.SERVICE: "servico"}


def find_first_json_object(text: str) -> Optional[str]:
    """
    Return the first balanced {...} span in `text`, or None.

    Braces inside JSON strings (including escaped quotes) do not count.
    """
    start = -1
    depth = 0
    in_string = False
    escaped = False

    for index, char in enumerate(text):
        if start < 0:
            if char == "{":
                start = index
                depth = 1
            continue

        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:index + 1]

    return None


def load_model_json(raw: str) -> Tuple[Dict[str, Any], ParseOutcome]:
    """Stages 1 and 2. Returns the decoded object and how it was obtained."""
    try:
        data = json.loads(raw)
        outcome = ParseOutcome.CLEAN
    except json.JSONDecodeError:
        span = find_first_json_object(raw)
        if span is None:
            raise ParseError(raw_output=raw, context={"stage": "no_json_span"})
        try:
            data = json.loads(span)
        except json.JSONDecodeError as e:
            raise ParseError(
                raw_output=raw, context={"stage": "recovery", "error": str(e)}
            ) from e
        outcome = ParseOutcome.RECOVERED
        logger.warning("Model output needed JSON recovery (%d chars)", len(raw))

    if not isinstance(data, dict):
        raise ParseError(
            raw_output=raw,
            context={"stage": "top_level", "type": type(data).__name__},
        )
    return data, outcome


def parse_model_output(raw: str) -> ParsedExtraction:
    """
    Parse raw model text into items.

    Raises:
        ParseError: no JSON object could be obtained
    """
    data, outcome = load_model_json(raw.strip())

    transcript = data.get("transcricao")
    return ParsedExtraction(
        pecas_materiais=_build_items(data.get("pecas_materiais"), ItemKind.MATERIAL),
        servicos=_build_items(data.get("servicos"), ItemKind.SERVICE),
        transcricao=transcript if isinstance(transcript, str) else None,
        parse_outcome=outcome,
    )


def _build_items(entries: Any, kind: ItemKind) -> List[ExtractedItem]:
    if not isinstance(entries, list):
        return []

    items: List[ExtractedItem] = []
    for position, entry in enumerate(entries, start=1):
        if not isinstance(entry, dict):
            continue
        item = _build_item(entry, kind, position)
        if item is None:
            logger.debug("Skipping %s entry %d without a name", kind.value, position)
            continue
        items.append(item)
    return items


def _build_item(entry: Dict[str, Any], kind: ItemKind, position: int) -> Optional[ExtractedItem]:
    key, name = _find_name(entry)
    if name is None:
        return None
    if key is None:
        key = f"{_KEY_PREFIX[kind]}_{position}"

    quantity = None
    if kind == ItemKind.MATERIAL:
        quantity = _coerce_quantity(_first_present(entry, QUANTITY_KEYS))

    return ExtractedItem(
        kind=kind,
        key=key,
        name=name,
        quantity=quantity,
        confidence=coerce_confidence(_first_present(entry, CONFIDENCE_KEYS)),
    )


def _find_name(entry: Dict[str, Any]) -> Tuple[Optional[str], Optional[str]]:
    for key, value in entry.items():
        if ITEM_KEY_PATTERN.match(key) and isinstance(value, str) and value.strip():
            return key, value
    for key in FALLBACK_NAME_KEYS:
        value = entry.get(key)
        if isinstance(value, str) and value.strip():
            return None, value
    return None, None


def _first_present(entry: Dict[str, Any], keys: Tuple[str, ...]) -> Any:
    for key in keys:
        if key in entry:
            return entry[key]
    return None


def _coerce_quantity(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None
