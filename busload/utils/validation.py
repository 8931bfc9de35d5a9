import re

WILDCARD_MARKER = "*"
MULTI_LEVEL_MARKER = ">"

_TOPIC_PATTERN = re.compile(r'^[a-zA-Z0-9_\-\.\*>]+$')


def validate_topic_name(name: str) -> bool:
    if not name or len(name) > 255:
        return False
    if not _TOPIC_PATTERN.match(name):
        return False
    return True


def is_wildcard_topic(name: str) -> bool:
    return WILDCARD_MARKER in name or MULTI_LEVEL_MARKER in name


def count_wildcard_markers(pattern: str) -> int:
    return pattern.count(WILDCARD_MARKER)
