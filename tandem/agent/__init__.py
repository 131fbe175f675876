"""Agent orchestration for Tandem."""

from tandem.agent.service import AIAgentService

__all__ = ["AIAgentService"]
