from .matcher import TagVersion, matches, parse_tag, tag_name
from .stage import TriggerStage

__all__ = ["TagVersion", "TriggerStage", "matches", "parse_tag", "tag_name"]
