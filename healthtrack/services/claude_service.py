"""
Claude Service - structured extraction through forced tool use
"""
import logging
from typing import Any, Dict, List, Optional

import anthropic
from anthropic import AsyncAnthropic

from healthtrack.config import settings
from healthtrack.utils.exceptions import UpstreamServiceError

logger = logging.getLogger(__name__)


def image_blocks(images: List[str], mime_type: str) -> List[Dict[str, Any]]:
    """Build base64 image content blocks, one per page"""
    return [
        {
            "type": "image",
            "source": {
                "type": "base64",
                "media_type": mime_type,
                "data": image,
            },
        }
        for image in images
    ]


def text_block(text: str) -> Dict[str, Any]:
    return {"type": "text", "text": text}


class ClaudeService:
    """Service for calling the Anthropic Messages API with a single forced tool"""

    def __init__(self, client: Optional[AsyncAnthropic] = None):
        """Initialize Claude client"""
        self._client = client
        self.model = settings.EXTRACTION_MODEL
        self.max_tokens = settings.EXTRACTION_MAX_TOKENS
        self.temperature = settings.EXTRACTION_TEMPERATURE
        logger.info("Claude service initialized")

    @property
    def client(self) -> AsyncAnthropic:
        if self._client is None:
            self._client = AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY)
        return self._client

    async def call_tool(
        self,
        content: List[Dict[str, Any]],
        tool: Dict[str, Any],
        max_tokens: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        Send one user turn and force the model to answer through ``tool``

        Args:
            content: Image and text content blocks for the user turn
            tool: Tool definition with name, description and input_schema
            max_tokens: Override for the configured token ceiling

        Returns:
            Every structured input the model produced, flattened into a list.
            A tool_use input may be a single object or an array of objects.
            An empty list means no structured answer came back.
        """
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens or self.max_tokens,
                temperature=self.temperature,
                tools=[tool],
                tool_choice={"type": "tool", "name": tool["name"]},
                messages=[{"role": "user", "content": content}]
            )
        except anthropic.APIStatusError as e:
            logger.error(f"Anthropic API error for {tool['name']}: {e.status_code} {e.message}")
            raise UpstreamServiceError("Anthropic API", e.status_code, str(e.message)) from e
        except anthropic.APIConnectionError as e:
            logger.error(f"Anthropic API unreachable for {tool['name']}: {e}")
            raise UpstreamServiceError("Anthropic API", None, str(e)) from e

        inputs: List[Dict[str, Any]] = []
        for block in response.content:
            if getattr(block, "type", None) != "tool_use":
                continue
            payload = block.input
            if isinstance(payload, list):
                inputs.extend(item for item in payload if isinstance(item, dict))
            elif isinstance(payload, dict):
                inputs.append(payload)

        logger.info(f"{tool['name']} returned {len(inputs)} structured record(s)")
        return inputs


# Singleton instance
claude_service = ClaudeService()
