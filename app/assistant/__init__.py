"""AI assistant prompts and responder."""

from .prompts import build_behavior_instructions, build_system_prompt
from .responder import OpenAIResponder, Responder, build_responder

__all__ = [
    "OpenAIResponder",
    "Responder",
    "build_behavior_instructions",
    "build_responder",
    "build_system_prompt",
]
