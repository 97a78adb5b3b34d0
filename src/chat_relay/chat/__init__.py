"""Chat relay package."""

from .orchestrator import ChatOrchestrator
from .relay import GenerationRelay
from .speech import SpeechRelay

__all__ = ["ChatOrchestrator", "GenerationRelay", "SpeechRelay"]
