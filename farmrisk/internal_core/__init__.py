from .config import AdvisorConfig, load_config
from .event_store import InMemoryEventStore

__all__ = ["AdvisorConfig", "load_config", "InMemoryEventStore"]
