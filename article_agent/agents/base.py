"""Base agent with output validation."""

import json
import logging
import re
from typing import Any, Dict

from article_agent.schemas.topic import TopicConfig
from article_agent.services.llm_client import LLMClient

logger = logging.getLogger(__name__)

FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")


class AgentOutputError(ValueError):
    """The model returned something the agent cannot use."""


class BaseAgent:
    """Base class for the LLM-backed stage collaborators.

    Each agent makes exactly one attempt per call; transient HTTP errors are
    retried inside ``LLMClient``, never by re-running the stage.
    """

    def __init__(self, llm_client: LLMClient, model: str):
        """Initialize base agent."""
        self.llm = llm_client
        self.model = model

    async def execute(self, topic: TopicConfig, **inputs: Any) -> Any:
        """
        Run the agent once and validate its output.

        Raises:
            AgentOutputError: If the output fails validation
        """
        name = self.__class__.__name__
        logger.info(f"Agent {name} running for {topic.key} with {self.model}")

        result = await self._run(topic, **inputs)

        if not self._validate(result):
            raise AgentOutputError(f"Agent {name} produced invalid output")

        logger.info(f"Agent {name} succeeded")
        return result

    async def _run(self, topic: TopicConfig, **inputs: Any) -> Any:
        """Agent logic (to be implemented by subclasses)."""
        raise NotImplementedError

    def _validate(self, result: Any) -> bool:
        """Validate the agent output (to be overridden by subclasses)."""
        return result is not None

    async def _complete_json(self, prompt: str, system: str = "", **kwargs: Any) -> Dict[str, Any]:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        response = await self.llm.chat_completion(
            model=self.model,
            messages=messages,
            json_mode=True,
            **kwargs,
        )
        return parse_json_response(response)


def parse_json_response(response: str) -> Dict[str, Any]:
    """Parse a JSON object from a model reply, tolerating code fences."""
    text = FENCE_RE.sub("", response.strip())
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise AgentOutputError(f"Model returned invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise AgentOutputError("Model returned JSON that is not an object")
    return data
