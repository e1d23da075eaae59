"""
Agent module - the loop that drives a session.

Includes:
- AgentLoop: buffering and streaming call-model / run-tools cycle
- AgentInput: what one invocation works on
- AgentEvent: marker events emitted by the streaming loop
- invoke_agent: mode-selecting entry point
"""

from .loop import AgentEvent, AgentInput, AgentLoop, invoke_agent

__all__ = [
    "AgentEvent",
    "AgentInput",
    "AgentLoop",
    "invoke_agent",
]
