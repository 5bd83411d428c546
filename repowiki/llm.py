"""
LLM boundary

Provider dispatch (OpenAI-compatible, Ollama, Google) for the two kinds
of model calls the service makes: schema-validated structured objects
for the generation pipeline, and streamed text for chat.

Structured output is requested as JSON, fenced or not, and validated
against the pydantic model before any field is trusted.
"""

import json
import logging
import re
from typing import AsyncIterator, Dict, List, Optional, Type, TypeVar

import google.generativeai as genai
from adalflow.components.model_client.ollama_client import OllamaClient
from adalflow.components.model_client.openai_client import OpenAIClient
from adalflow.core.types import ModelType
from pydantic import BaseModel, ValidationError

from repowiki.config import GOOGLE_API_KEY, configs, get_model_config
from repowiki.errors import GenerationError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

_THINK_BLOCK = re.compile(r"<think>[\s\S]*?</think>")


def _estimate_tokens(text: str) -> int:
    """Rough token estimate (words-based, ~1.3 tokens per word)."""
    return int(len(text.split()) * 1.3)


def _compose(system: str, prompt: str) -> str:
    return f"{system.strip()}\n\n{prompt}"


def _strip_think(text: str) -> str:
    # Thinking models (deepseek-r1, qwen3...) prepend their reasoning
    return _THINK_BLOCK.sub("", text).strip()


def parse_json_response(text: str) -> dict:
    """Parse a JSON object out of a model reply.

    Strips ``<think>`` blocks and markdown fences, then falls back to the
    outermost ``{...}`` span when the model wrapped the JSON in prose.

    Raises:
        GenerationError: if no JSON object can be decoded.
    """
    text = _strip_think(text)
    if text.startswith("```"):
        text = re.sub(r"^```\w*\n?", "", text)
        text = re.sub(r"\n?```$", "", text)
        text = text.strip()
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            raise GenerationError("Model response contained no JSON object")
        try:
            data = json.loads(text[start:end + 1])
        except json.JSONDecodeError as exc:
            raise GenerationError(f"Model response was not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise GenerationError("Model response JSON was not an object")
    return data


def _schema_instruction(schema: Type[BaseModel]) -> str:
    return (
        "## Output format\n\n"
        "Respond ONLY with a single JSON object that validates against this JSON Schema. "
        "Do not wrap it in markdown code fences and do not add any text before or after it.\n\n"
        f"{json.dumps(schema.model_json_schema(), indent=2)}"
    )


def _extract_llm_content(response) -> str:
    """Extract text content from any LLM response format.

    Handles ChatCompletion objects, Responses-API objects, Ollama chat
    replies and plain strings.
    """
    if hasattr(response, "choices") and response.choices:
        msg = response.choices[0].message
        content = getattr(msg, "content", None) or ""
        if not content.strip():
            reasoning = getattr(msg, "reasoning_content", None) or ""
            if reasoning:
                logger.info("[_extract_llm_content] content empty, using reasoning_content (%d chars)", len(reasoning))
                return reasoning
        return content

    output_text = getattr(response, "output_text", None)
    if isinstance(output_text, str):
        return output_text

    message = getattr(response, "message", None)
    if message is None and isinstance(response, dict):
        message = response.get("message")
    if message is not None:
        if isinstance(message, dict):
            return message.get("content", "") or ""
        return getattr(message, "content", "") or ""

    if isinstance(response, str):
        return response

    return str(response)


def _extract_stream_delta(chunk) -> str:
    """Return the text carried by one streamed chunk, or ''."""
    if hasattr(chunk, "choices") and chunk.choices:
        delta = chunk.choices[0].delta
        return getattr(delta, "content", None) or ""
    if getattr(chunk, "type", "") == "response.output_text.delta":
        return getattr(chunk, "delta", "") or ""
    message = getattr(chunk, "message", None)
    if message is None and isinstance(chunk, dict):
        message = chunk.get("message")
    if message is not None:
        if isinstance(message, dict):
            return message.get("content", "") or ""
        return getattr(message, "content", "") or ""
    if isinstance(chunk, str):
        return chunk
    return ""


class LLMClient:
    """Calls the configured provider/model.

    Typical usage::

        llm = LLMClient(provider="openai", model="gpt-5-mini")
        analysis = await llm.generate_object(system, context, ArchitectureAnalysis)
    """

    def __init__(self, provider: Optional[str] = None, model: Optional[str] = None):
        self.provider = provider or configs.get("default_provider", "openai")
        if not model:
            provider_cfg = configs.get("providers", {}).get(self.provider, {})
            model = provider_cfg.get("default_model", "")
        self.model = model
        if self.provider == "google" and GOOGLE_API_KEY:
            genai.configure(api_key=GOOGLE_API_KEY)

    # ---- public API ----

    async def complete(
        self,
        system: str,
        prompt: str,
        label: str = "",
        max_tokens: Optional[int] = None,
    ) -> str:
        """Return the full (non-streamed) text reply, ``<think>`` blocks removed."""
        full_prompt = _compose(system, prompt)
        est_tokens = _estimate_tokens(full_prompt)
        logger.info(
            "[llm] %s | provider=%s model=%s | prompt_chars=%d est_tokens=%d",
            label or "unnamed", self.provider, self.model, len(full_prompt), est_tokens,
        )
        try:
            result = await self._call(full_prompt, max_tokens)
        except Exception as exc:
            logger.error(
                "[llm] FAILED %s | provider=%s model=%s | prompt_chars=%d | error=%s: %s",
                label or "unnamed", self.provider, self.model, len(full_prompt),
                type(exc).__name__, exc,
            )
            raise GenerationError(f"Model call failed: {exc}") from exc

        stripped = _strip_think(result)
        logger.info("[llm] OK %s | raw_chars=%d stripped_chars=%d", label or "unnamed", len(result), len(stripped))
        return stripped

    async def generate_object(
        self,
        system: str,
        prompt: str,
        schema: Type[T],
        label: str = "",
        max_tokens: Optional[int] = None,
    ) -> T:
        """Ask for a JSON object matching ``schema`` and validate it.

        Raises:
            GenerationError: on a failed call, empty reply, unparseable JSON
                or a schema violation.
        """
        text = await self.complete(
            f"{system.strip()}\n\n{_schema_instruction(schema)}", prompt, label, max_tokens,
        )
        if not text:
            raise GenerationError(f"Empty model output for {label or schema.__name__}")
        data = parse_json_response(text)
        try:
            return schema.model_validate(data)
        except ValidationError as exc:
            logger.warning("[llm] %s output failed schema validation: %s", label or "unnamed", exc)
            raise GenerationError(f"Model output did not match {schema.__name__}") from exc

    async def stream_chat(self, system: str, messages: List[Dict[str, str]]) -> AsyncIterator[str]:
        """Stream the assistant's reply to a conversation, token chunk by chunk."""
        prompt = _compose(system, self._render_conversation(messages))
        logger.info(
            "[llm] chat | provider=%s model=%s | turns=%d prompt_chars=%d",
            self.provider, self.model, len(messages), len(prompt),
        )
        async for text in self._stream(prompt):
            if text:
                yield text

    # ---- provider dispatch ----

    @staticmethod
    def _render_conversation(messages: List[Dict[str, str]]) -> str:
        history = messages[:-1]
        parts = []
        if history:
            turns = "\n".join(
                f"<turn role=\"{m['role']}\">\n{m['content']}\n</turn>" for m in history
            )
            parts.append(f"<conversation_history>\n{turns}\n</conversation_history>")
        parts.append(f"<query>\n{messages[-1]['content']}\n</query>")
        return "\n\n".join(parts)

    def _model_kwargs(self) -> dict:
        return get_model_config(self.provider, self.model)["model_kwargs"]

    async def _call(self, prompt: str, max_tokens: Optional[int]) -> str:
        model_kwargs_cfg = self._model_kwargs()

        if self.provider == "google":
            genai_model = genai.GenerativeModel(
                model_name=model_kwargs_cfg["model"],
                generation_config=self._google_generation_config(model_kwargs_cfg, max_tokens),
            )
            response = await genai_model.generate_content_async(prompt)
            return response.text

        client, api_kwargs = self._adalflow_request(prompt, model_kwargs_cfg, max_tokens, stream=False)
        response = await client.acall(api_kwargs=api_kwargs, model_type=ModelType.LLM)

        # Some proxies ignore stream=False and return a stream anyway
        if hasattr(response, "__aiter__"):
            logger.info("[llm] response is async iterable (stream), consuming chunks")
            content_parts = []
            async for chunk in response:
                content_parts.append(_extract_stream_delta(chunk))
            return "".join(content_parts)

        return _extract_llm_content(response)

    async def _stream(self, prompt: str) -> AsyncIterator[str]:
        model_kwargs_cfg = self._model_kwargs()

        if self.provider == "google":
            genai_model = genai.GenerativeModel(
                model_name=model_kwargs_cfg["model"],
                generation_config=self._google_generation_config(model_kwargs_cfg, None),
            )
            response = await genai_model.generate_content_async(prompt, stream=True)
            async for chunk in response:
                yield getattr(chunk, "text", "") or ""
            return

        client, api_kwargs = self._adalflow_request(prompt, model_kwargs_cfg, None, stream=True)
        response = await client.acall(api_kwargs=api_kwargs, model_type=ModelType.LLM)
        if hasattr(response, "__aiter__"):
            async for chunk in response:
                yield _extract_stream_delta(chunk)
        else:
            yield _extract_llm_content(response)

    @staticmethod
    def _google_generation_config(model_kwargs_cfg: dict, max_tokens: Optional[int]) -> dict:
        config = {
            "temperature": model_kwargs_cfg.get("temperature", 0.7),
            "top_p": model_kwargs_cfg.get("top_p", 0.8),
            "top_k": model_kwargs_cfg.get("top_k", 40),
        }
        if max_tokens:
            config["max_output_tokens"] = max_tokens
        return config

    def _adalflow_request(self, prompt: str, model_kwargs_cfg: dict, max_tokens: Optional[int], stream: bool):
        if self.provider == "ollama":
            client = OllamaClient()
            options = {
                k: model_kwargs_cfg[k]
                for k in ("temperature", "top_p", "num_ctx")
                if k in model_kwargs_cfg
            }
            if max_tokens:
                options["num_predict"] = max_tokens
            kwargs = {"model": model_kwargs_cfg["model"], "stream": stream, "options": options}
        elif self.provider == "openai":
            client = OpenAIClient()
            kwargs = {"model": model_kwargs_cfg["model"], "stream": stream}
            for k in ("temperature", "top_p"):
                if k in model_kwargs_cfg:
                    kwargs[k] = model_kwargs_cfg[k]
            # adalflow routes OpenAI calls through the Responses API
            if max_tokens:
                kwargs["max_output_tokens"] = max_tokens
        else:
            raise ValueError(f"Unsupported provider: {self.provider}")

        api_kwargs = client.convert_inputs_to_api_kwargs(
            input=prompt, model_kwargs=kwargs, model_type=ModelType.LLM,
        )
        return client, api_kwargs
