"""
LLM Engine - chat model factory for the portfolio strategist persona.
Talks to OpenAI-compatible APIs (OpenAI itself or a local Ollama server)
and always asks for a single JSON object as the answer.
"""

from typing import Literal, Optional, Tuple
from langchain_openai import ChatOpenAI
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
import logging

from config import get_settings
from prompts import load_prompt

logger = logging.getLogger(__name__)


DEFAULT_SYSTEM_PROMPT = load_prompt("system_prompt.txt")

JSON_RESPONSE_FORMAT = {"type": "json_object"}

# Ollama ignores the key but the OpenAI client refuses to start without one
LOCAL_API_KEY = "ollama"


class LLMClient:
    """
    Thin wrapper around a LangChain chat model in JSON response mode.
    """

    def __init__(
        self,
        mode: Optional[Literal["cloud", "local"]] = None,
        model_name: Optional[str] = None,
        temperature: float = 0.3,
        max_tokens: Optional[int] = None,
        llm: Optional[BaseChatModel] = None,
    ):
        """
        Args:
            mode: "cloud" for OpenAI-compatible APIs, "local" for Ollama (default: LLM_MODE)
            model_name: Overrides the configured model for this client
            temperature: Sampling temperature
            max_tokens: Maximum tokens in response
            llm: Pre-built chat model, used as is (no JSON binding)
        """
        self.mode = mode or get_settings().llm_mode
        self.temperature = temperature
        self.max_tokens = max_tokens

        if llm is not None:
            self.model_name = model_name or getattr(llm, "model_name", None)
            self._llm = llm
        else:
            model, base_url, api_key = self._resolve_endpoint(model_name)
            self.model_name = model
            logger.info(f"Initializing {self.mode} LLM: {model} at {base_url or 'OpenAI official'}")
            self._llm = ChatOpenAI(
                model=model,
                api_key=api_key,
                base_url=base_url,
                temperature=temperature,
                max_tokens=max_tokens,
            ).bind(response_format=JSON_RESPONSE_FORMAT)

    def _resolve_endpoint(self, model_name: Optional[str]) -> Tuple[str, Optional[str], str]:
        """Pick (model, base_url, api_key) for the configured mode."""
        settings = get_settings()

        if self.mode == "local":
            return model_name or settings.local_model, settings.local_llm_url, LOCAL_API_KEY

        if self.mode != "cloud":
            raise ValueError(f"Invalid mode: {self.mode}. Must be 'cloud' or 'local'.")
        if not settings.openai_api_key:
            raise ValueError("API key not found. Set OPENAI_API_KEY environment variable.")
        model = model_name or settings.openai_model
        if not model:
            raise ValueError("Model name not found. Set OPENAI_MODEL environment variable.")
        return model, settings.openai_base_url, settings.openai_api_key

    async def ainvoke_json(self, message: str, system_message: Optional[str] = None) -> str:
        """
        Send one prompt and return the raw model output.

        Args:
            message: User message (prompt including the expected JSON schema)
            system_message: Replaces the default strategist persona

        Returns:
            Model output, expected to be a single JSON document
        """
        response = await self._llm.ainvoke([
            SystemMessage(content=system_message or DEFAULT_SYSTEM_PROMPT),
            HumanMessage(content=message),
        ])

        content = response.content
        if isinstance(content, list):
            # Some providers return content blocks instead of a plain string
            content = "".join(
                block.get("text", "") if isinstance(block, dict) else str(block)
                for block in content
            )
        logger.debug(f"{self.model_name or 'LLM'} returned {len(content)} characters")
        return content
