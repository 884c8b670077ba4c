"""Chat turn orchestration."""

from .auto_answer import AutoAnswerOrchestrator

__all__ = ["AutoAnswerOrchestrator"]
