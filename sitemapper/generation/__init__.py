from sitemapper.generation.events import EventType, GenerationEvent, parse_event
from sitemapper.generation.tracker import GenerationTracker

__all__ = ["EventType", "GenerationEvent", "GenerationTracker", "parse_event"]
