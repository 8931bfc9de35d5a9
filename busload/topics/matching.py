from ..utils.validation import MULTI_LEVEL_MARKER, WILDCARD_MARKER


def topic_matches(pattern: str, topic: str) -> bool:
    """
    Match a dot-separated topic against a subscription pattern.

    ``*`` matches exactly one level; ``>`` as the last level matches one or
    more trailing levels.
    """
    pattern_levels = pattern.split(".")
    topic_levels = topic.split(".")
    
    for i, level in enumerate(pattern_levels):
        if level == MULTI_LEVEL_MARKER and i == len(pattern_levels) - 1:
            return len(topic_levels) > i
        if i >= len(topic_levels):
            return False
        if level != WILDCARD_MARKER and level != topic_levels[i]:
            return False
    
    return len(topic_levels) == len(pattern_levels)
