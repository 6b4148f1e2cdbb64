from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable

from loguru import logger

from app.llm_client import client as llm_client, get_model
from app.services import logger as log_service

StepCallback = Callable[[int, int], None]


@dataclass
class AgentResult:
    success: bool
    final_text: str
    steps: int


class BaseAgent:
    """Base agent that wraps the Anthropic tool-use loop.

    Subclasses define `system_prompt`, `tools`, and `handle_tool_call`.
    Each model turn counts as one step; `run` stops at `max_steps`.
    Text the model writes alongside tool calls is logged as reasoning.
    At the step limit the last turn's text is still returned.
    """

    name: str = "base"
    system_prompt: str = ""
    tools: list[dict[str, Any]] = []
    max_tokens: int = 4096

    def __init__(self, model: str | None = None):
        self.model = model or get_model()
        self.client = None

    async def handle_tool_call(
        self, tool_name: str, tool_input: dict[str, Any]
    ) -> str | list[dict[str, Any]]:
        """Execute a tool call and return tool_result content.

        Must be overridden by subclasses that define tools.
        """
        raise NotImplementedError(f"Tool {tool_name} not handled")

    async def run(
        self,
        instruction: str,
        *,
        max_steps: int = 20,
        on_step: StepCallback | None = None,
    ) -> AgentResult:
        messages: list[dict[str, Any]] = [{"role": "user", "content": instruction}]
        active_client = self.client or llm_client()
        last_text = ""

        for step in range(1, max_steps + 1):
            kwargs: dict[str, Any] = {
                "model": self.model,
                "max_tokens": self.max_tokens,
                "system": self.system_prompt,
                "messages": messages,
            }
            if self.tools:
                kwargs["tools"] = self.tools

            t0 = time.monotonic()
            response = await active_client.messages.create(**kwargs)
            elapsed_ms = int((time.monotonic() - t0) * 1000)

            usage = getattr(response, "usage", None)
            log_service.log_llm_call(
                model=self.model,
                caller=self.name,
                input_tokens=getattr(usage, "input_tokens", 0) or 0,
                output_tokens=getattr(usage, "output_tokens", 0) or 0,
                duration_ms=elapsed_ms,
            )

            tool_use_blocks = [b for b in response.content if b.type == "tool_use"]
            text_blocks = [b for b in response.content if b.type == "text"]

            last_text = "\n".join(b.text for b in text_blocks).strip()

            if not tool_use_blocks:
                logger.info(f"{self.name} finished after {step} steps")
                return AgentResult(success=True, final_text=last_text, steps=step)

            for block in text_blocks:
                if block.text.strip():
                    logger.info(f"Reasoning: {block.text.strip()}")

            messages.append({"role": "assistant", "content": response.content})

            tool_results = []
            for tool_block in tool_use_blocks:
                try:
                    content = await self.handle_tool_call(tool_block.name, tool_block.input)
                    tool_results.append({
                        "type": "tool_result",
                        "tool_use_id": tool_block.id,
                        "content": content,
                    })
                except Exception as e:
                    logger.debug(f"Tool {tool_block.name} failed: {e}")
                    tool_results.append({
                        "type": "tool_result",
                        "tool_use_id": tool_block.id,
                        "content": f"Error: {e}",
                        "is_error": True,
                    })

            messages.append({"role": "user", "content": tool_results})

            if on_step is not None:
                on_step(step, max_steps)

        logger.warning(f"{self.name} stopped at the step limit ({max_steps})")
        return AgentResult(success=False, final_text=last_text, steps=max_steps)
