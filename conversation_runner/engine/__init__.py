from ..config import EngineConfig
from .base import ConversationEngine, ConversationSession
from .loopback import LoopbackEngine
from .remote import RemoteEngine


def build_engine(config: EngineConfig) -> ConversationEngine:
    """Instantiate the configured engine backend."""
    if config.backend == "loopback":
        return LoopbackEngine(delay_sec=config.loopback_delay_sec)
    if config.backend == "remote":
        return RemoteEngine(config)
    raise ValueError(f"Unknown engine backend: {config.backend}")


__all__ = [
    'ConversationEngine',
    'ConversationSession',
    'LoopbackEngine',
    'RemoteEngine',
    'build_engine',
]
