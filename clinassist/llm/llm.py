"""Chat-model backed inference capability."""

from typing import Any, List

from langchain_core.messages import BaseMessage, HumanMessage

from clinassist.analysis.models import ErrorKind
from clinassist.config.logger import get_logger
from clinassist.llm.gateway import CapabilityError, CapabilityRequest
from clinassist.llm.model_factory import get_chat_model

_logger = get_logger(__name__)


def _content_to_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: List[str] = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(str(block.get("text", "")))
        return "".join(parts)
    return "" if content is None else str(content)


class ChatCapability:
    """InferenceCapability over a langchain chat model.

    The chat model is resolved lazily per request through the model factory so
    that the output ceiling in each request is honoured by the provider.
    """

    def __init__(self, use_case_key: str, default_model: str = "") -> None:
        self.use_case_key = use_case_key
        self.default_model = default_model

    def _build_messages(self, request: CapabilityRequest) -> List[BaseMessage]:
        if request.attachment is None:
            return [HumanMessage(content=request.instruction)]
        return [
            HumanMessage(
                content=[
                    {"type": "text", "text": request.instruction},
                    {"type": "image_url", "image_url": {"url": request.attachment.image_url}},
                ]
            )
        ]

    async def generate(self, request: CapabilityRequest) -> str:
        llm = get_chat_model(
            use_case_key=self.use_case_key,
            default_model=self.default_model,
            max_tokens=request.max_output_tokens,
            json_mode=request.json_mode,
        )
        if llm is None:
            raise CapabilityError(
                ErrorKind.UNREACHABLE,
                f"No chat model could be configured for use case '{self.use_case_key}'.",
            )

        response = await llm.ainvoke(self._build_messages(request))
        text = _content_to_text(getattr(response, "content", response))
        _logger.debug(
            "[capability] use_case=%s response_chars=%d",
            self.use_case_key,
            len(text),
        )
        return text
