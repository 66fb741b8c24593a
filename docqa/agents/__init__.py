"""
Agent Package

Contains the tool-calling agent loop, the prompt mode selection and the intent
heuristics that feed it.
"""

from .agent_loop import AgentLoop, AgentRunRequest, AgentRunResult
from .intent import Intent, IntentClassifier
from .prompts import PromptMode, PromptPlan, build_prompt_plan

__all__ = [
    "AgentLoop",
    "AgentRunRequest",
    "AgentRunResult",
    "Intent",
    "IntentClassifier",
    "PromptMode",
    "PromptPlan",
    "build_prompt_plan",
]
