"""
Rewriting of dependent-template ID references for workflow copies.

Dependent template IDs are the owning workflow template ID followed by three
digits (workflow 123 → task 123045). When workflow 123 is copied to 456, every
`123ddd` literal inside the serialized JSON schemas is a candidate reference
to rewrite as `456ddd`.

Some candidates are obviously structural and rewritten silently:

    "taskTemplateId":123045        (JSON key/value)
    taskTemplateId === 123045      (comparison in embedded code)

Anything else (labels, URLs, free text) becomes a diff the user reviews
before the copy is committed; excluded diffs are left untouched, identified
by their character offset in the serialized schema.

This is a textual heuristic: free text that happens to read
`someTemplateId": 123045` is classified as structural too.
"""

import json
import re
import secrets
from typing import Any, Dict, Iterable, List

from .serialization import dumps_compact

CONTEXT_CHARS = 50

TEMPLATE_ID_PLACEHOLDER = "<templateId>"

# longest_string bounds how far before the match the pattern may start
SAFE_REPLACEMENT_PATTERNS = (
    {
        "longest_string": "TemplateId   ===   <templateId>",
        "pattern": r"TemplateId\s{0,3}={2,3}\s{0,3}<templateId>",
    },
    {
        "longest_string": 'TemplateId":  <templateId>',
        "pattern": r'TemplateId":\s{0,3}<templateId>',
    },
)


def reference_pattern(workflow_template_id: int) -> "re.Pattern[str]":
    """`<id><exactly 3 digits>` anywhere in the text"""
    return re.compile(rf"{re.escape(str(workflow_template_id))}[0-9]{{3}}")


def replace_prefix(value: str, prev_workflow_template_id: int, new_workflow_template_id: int) -> str:
    """Swap the leading workflow template ID of an ID literal"""
    prefix = str(prev_workflow_template_id)
    if value.startswith(prefix):
        return f"{new_workflow_template_id}{value[len(prefix):]}"
    return value


def remap_template_id(template_id: Any, prev_workflow_template_id: int, new_workflow_template_id: int) -> Any:
    """
    New ID of a dependent template: only the leading occurrence of the old
    workflow template ID is replaced (123045 → 456045, 991230 unchanged).
    """
    if template_id is None:
        return None
    return int(replace_prefix(str(template_id), prev_workflow_template_id, new_workflow_template_id))


def is_safe_replacement(matched: str, index: int, text: str) -> bool:
    """True if the match at `index` sits in a `...TemplateId` key or comparison"""
    for safe in SAFE_REPLACEMENT_PATTERNS:
        longest = safe["longest_string"].replace(TEMPLATE_ID_PLACEHOLDER, matched)
        start = max(0, index - len(longest))
        window = text[start:index + len(matched)]
        pattern = safe["pattern"].replace(TEMPLATE_ID_PLACEHOLDER, re.escape(matched))
        if re.search(pattern, window):
            return True
    return False


def find_diffs(
    templates: Iterable[Dict[str, Any]],
    template_type: str,
    prev_workflow_template_id: int,
    new_workflow_template_id: int
) -> List[Dict[str, Any]]:
    """
    Collect the matches that need review in the jsonSchema of each template.

    Args:
        templates: Serialized templates ({"id": ..., "jsonSchema": ...})
        template_type: "taskTemplate", "documentTemplate", "gatewayTemplate" or "eventTemplate"
        prev_workflow_template_id: Source workflow template ID
        new_workflow_template_id: Destination ID used for the preview

    Returns:
        List of diffs: {id, type, templateId, index, beforeReplacing, afterReplacing}
    """
    regexp = reference_pattern(prev_workflow_template_id)
    diffs = []

    for template in templates:
        text = dumps_compact(template.get("jsonSchema"))

        for match in regexp.finditer(text):
            matched = match.group(0)
            index = match.start()
            if is_safe_replacement(matched, index, text):
                continue

            context = text[max(0, index - CONTEXT_CHARS):index + len(matched) + CONTEXT_CHARS]
            diffs.append({
                "id": secrets.token_hex(16),
                "type": template_type,
                "templateId": template.get("id"),
                "index": index,
                "beforeReplacing": context,
                "afterReplacing": regexp.sub(
                    lambda m: replace_prefix(m.group(0), prev_workflow_template_id, new_workflow_template_id),
                    context
                ),
            })

    return diffs


def replace_references(
    schema: Any,
    prev_workflow_template_id: int,
    new_workflow_template_id: int,
    excluded_offsets: Iterable[int] = ()
) -> Any:
    """
    Rewrite every `<prev><ddd>` literal of a schema except the excluded ones.

    Args:
        schema: JSON value (dict, list, scalar or None)
        prev_workflow_template_id: Source workflow template ID
        new_workflow_template_id: Destination workflow template ID
        excluded_offsets: Match offsets (diff "index") to leave as-is

    Returns:
        New JSON value with references rewritten
    """
    excluded = set(excluded_offsets)
    regexp = reference_pattern(prev_workflow_template_id)

    def substitute(match):
        if match.start() in excluded:
            return match.group(0)
        return replace_prefix(match.group(0), prev_workflow_template_id, new_workflow_template_id)

    return json.loads(regexp.sub(substitute, dumps_compact(schema)))
