"""Parsing and validation for the delimited intent/reply protocol.

The generation service is asked to answer with two blocks::

    [INTENT]{"mode": "edit", "action": "rewrite_section", "target": {...}}[/INTENT]
    [REPLY]natural-language text for the user[/REPLY]

:func:`parse_output` never raises. Problems are reported through
:class:`~docpilot.ai.intent.types.ParseStatus` so the caller can degrade the
turn to plain chat.
"""

from __future__ import annotations

import json
import logging
import re
from json import JSONDecodeError
from typing import Any, Mapping, Sequence

import jsonschema

from .types import (
    INTENT_CLASSES,
    SECTION_ACTIONS,
    Intent,
    IntentAction,
    IntentMode,
    IntentTarget,
    ModelOutput,
    ParagraphRef,
    ParseStatus,
    RewriteParagraphIntent,
    TargetScope,
    _frozen_params,
)

LOGGER = logging.getLogger(__name__)

__all__ = [
    "INTENT_BLOCK_RE",
    "REPLY_BLOCK_RE",
    "INTENT_SCHEMA",
    "FALLBACK_REPLY",
    "MAX_SCHEMA_ERRORS",
    "parse_output",
    "validate_payload",
    "build_intent",
    "strip_code_fences",
    "format_schema_path",
]

INTENT_BLOCK_RE = re.compile(r"\[INTENT\](?P<body>.*?)\[/INTENT\]", re.IGNORECASE | re.DOTALL)
REPLY_BLOCK_RE = re.compile(r"\[REPLY\](?P<body>.*?)\[/REPLY\]", re.IGNORECASE | re.DOTALL)
_STRAY_DELIMITER_RE = re.compile(r"\[/?(?:INTENT|REPLY)\]", re.IGNORECASE)
_CODE_FENCE_RE = re.compile(r"^\s*```[a-zA-Z0-9_-]*\s*\n?(?P<body>.*?)\n?\s*```\s*$", re.DOTALL)

FALLBACK_REPLY = "抱歉，我没能理解这次的回复，请换个说法再试一次。"
MAX_SCHEMA_ERRORS = 20

_SECTION_ACTION_VALUES = sorted(action.value for action in SECTION_ACTIONS)

INTENT_SCHEMA: Mapping[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["mode", "action", "target"],
    "properties": {
        "mode": {"enum": [mode.value for mode in IntentMode]},
        "action": {"enum": [action.value for action in IntentAction]},
        "target": {
            "type": "object",
            "required": ["scope"],
            "properties": {
                "scope": {"enum": [scope.value for scope in TargetScope]},
                "sectionId": {"type": ["string", "null"]},
            },
        },
        "params": {
            "type": "object",
            "properties": {
                "paragraphRef": {"enum": [ref.value for ref in ParagraphRef]},
                "paragraphIndex": {"type": "integer", "minimum": 1},
            },
        },
    },
    "allOf": [
        {
            "if": {"properties": {"action": {"enum": _SECTION_ACTION_VALUES}}, "required": ["action"]},
            "then": {
                "properties": {
                    "target": {
                        "required": ["scope", "sectionId"],
                        "properties": {
                            "scope": {"const": TargetScope.SECTION.value},
                            "sectionId": {"type": "string", "minLength": 1, "pattern": r"\S"},
                        },
                    }
                }
            },
        }
    ],
}

_VALIDATOR = jsonschema.Draft202012Validator(INTENT_SCHEMA)


def parse_output(raw_text: str | None) -> ModelOutput:
    """Decode one raw generation-service response."""

    raw = raw_text if isinstance(raw_text, str) else ""
    reply_text = _extract_reply(raw)

    intent_match = INTENT_BLOCK_RE.search(raw)
    if intent_match is None:
        return ModelOutput(reply_text=reply_text, raw_text=raw, parse_status=ParseStatus.MISSING)

    body = strip_code_fences(intent_match.group("body") or "")
    try:
        payload = json.loads(body)
    except JSONDecodeError as exc:
        LOGGER.debug("Intent block is not valid JSON: %s", exc.msg)
        return ModelOutput(
            reply_text=reply_text,
            raw_text=raw,
            parse_status=ParseStatus.MALFORMED,
            errors=(f"{exc.msg} (line {exc.lineno}, column {exc.colno})",),
        )
    if not isinstance(payload, dict):
        return ModelOutput(
            reply_text=reply_text,
            raw_text=raw,
            parse_status=ParseStatus.MALFORMED,
            errors=(f"Expected a JSON object, got {type(payload).__name__}",),
        )

    errors = validate_payload(payload)
    if errors:
        LOGGER.debug("Intent payload failed validation: %s", "; ".join(errors))
        return ModelOutput(
            reply_text=reply_text,
            raw_text=raw,
            parse_status=ParseStatus.INVALID,
            errors=tuple(errors),
        )

    return ModelOutput(
        reply_text=reply_text,
        raw_text=raw,
        parse_status=ParseStatus.OK,
        intent=build_intent(payload),
    )


def validate_payload(payload: Mapping[str, Any]) -> list[str]:
    messages: list[str] = []
    issues = sorted(_VALIDATOR.iter_errors(payload), key=lambda error: [str(part) for part in error.absolute_path])
    for issue in issues:
        path = format_schema_path(issue.absolute_path)
        messages.append(f"{path}: {issue.message}" if path else issue.message)
        if len(messages) >= MAX_SCHEMA_ERRORS:
            messages.append("Too many validation errors; stopping early.")
            break
    return messages


def build_intent(payload: Mapping[str, Any]) -> Intent:
    """Construct the closed intent variant for an already validated payload."""

    action = IntentAction(payload["action"])
    mode = IntentMode(payload["mode"])
    target_payload = payload.get("target") or {}
    section_id = target_payload.get("sectionId")
    target = IntentTarget(
        scope=TargetScope(target_payload["scope"]),
        section_id=section_id.strip() if isinstance(section_id, str) and section_id.strip() else None,
    )
    params = dict(payload.get("params") or {})
    intent_cls = INTENT_CLASSES[action]
    if intent_cls is RewriteParagraphIntent:
        ref = params.get("paragraphRef")
        return RewriteParagraphIntent(
            mode=mode,
            target=target,
            params=_frozen_params(params),
            paragraph_ref=ParagraphRef(ref) if ref else None,
            paragraph_index=params.get("paragraphIndex"),
        )
    return intent_cls(mode=mode, target=target, params=_frozen_params(params))


def strip_code_fences(text: str) -> str:
    stripped = (text or "").strip()
    match = _CODE_FENCE_RE.match(stripped)
    if match:
        return match.group("body").strip()
    return stripped


def format_schema_path(path: Sequence[Any]) -> str:
    if not path:
        return ""
    components: list[str] = []
    for segment in path:
        if isinstance(segment, int):
            if components:
                components[-1] = f"{components[-1]}[{segment}]"
            else:
                components.append(f"[{segment}]")
        else:
            components.append(str(segment))
    return ".".join(filter(None, components))


def _extract_reply(raw: str) -> str:
    match = REPLY_BLOCK_RE.search(raw)
    if match:
        reply = (match.group("body") or "").strip()
    else:
        without_intent = INTENT_BLOCK_RE.sub("", raw, count=1)
        reply = _STRAY_DELIMITER_RE.sub("", without_intent).strip()
    return reply or FALLBACK_REPLY
