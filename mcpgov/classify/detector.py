from __future__ import annotations

from .keywords import DEFAULT_KEYWORDS, OPERATION_ORDER, KeywordTable, Operation

UNKNOWN_SERVICE = "unknown"
SERVICE_SEPARATOR = "_"


def classify(tool: object, keywords: KeywordTable = DEFAULT_KEYWORDS) -> Operation:
    """Map a tool identifier to exactly one operation category.

    Categories are tried from most to least sensitive and the first one with
    a keyword contained in the lower-cased identifier wins, so
    ``archive_and_delete`` is a delete and not a read. Identifiers matching
    nothing are treated as writes.
    """
    if not isinstance(tool, str) or not tool:
        return Operation.WRITE

    lowered = tool.lower()
    for operation in OPERATION_ORDER:
        if any(keyword in lowered for keyword in keywords.keywords_for(operation)):
            return operation
    return Operation.WRITE


def resolve_service(
    explicit_service: str | None,
    tool: object,
    keywords: KeywordTable = DEFAULT_KEYWORDS,
) -> str:
    """Return the configured service, else guess it from the tool name.

    The guess is the segment before the first ``_``. A leading segment that
    is itself an operation keyword (``list_directory``) names a verb, not a
    service, and yields ``unknown``; so does a name with no separator.
    """
    if explicit_service:
        return explicit_service
    if not isinstance(tool, str):
        return UNKNOWN_SERVICE
    prefix, sep, _rest = tool.partition(SERVICE_SEPARATOR)
    if not sep or not prefix or prefix.lower() in keywords.all_keywords():
        return UNKNOWN_SERVICE
    return prefix


def parse_tool_name(tool: object, keywords: KeywordTable = DEFAULT_KEYWORDS) -> tuple[str, Operation]:
    return resolve_service(None, tool, keywords), classify(tool, keywords)
