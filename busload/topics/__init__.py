from .expander import RoundRobinTopics, expand, expand_all, leaf_topic
from .matching import topic_matches

__all__ = ["RoundRobinTopics", "expand", "expand_all", "leaf_topic", "topic_matches"]
