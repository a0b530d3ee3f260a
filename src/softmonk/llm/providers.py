"""
LLM 提供商构建与调用管理 - LLM Provider Building and Invocation Management

每个后端一个适配器，统一的调用签名 send(system_prompt, messages) -> ProviderReply。
适配器把厂商异常翻译成 errors.py 中的类型。
One adapter per backend behind a single signature, send(system_prompt, messages) ->
ProviderReply. Adapters translate vendor exceptions into the types in errors.py.
"""

from __future__ import annotations

import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional, Sequence

import httpx
import openai
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types
from langchain_core.messages import AIMessage, BaseMessage, SystemMessage
from langchain_openai import AzureChatOpenAI, ChatOpenAI

from ..errors import (
    ConfigurationError,
    SoftMonkError,
    TransientNetworkError,
    UpstreamError,
    UpstreamRateLimited,
)
from ..schemas import GroundingLink, dedupe_links
from .prompts import SYSTEM_PROMPTS

TagGrammar = Literal["grounding", "labeled", "bracket"]



@dataclass(frozen=True)
class ProviderConfig:
    """
    供应商配置 - Provider Configuration

    每个后端一份，由环境变量构建。credential 为空表示未配置。
    One per backend, built from environment variables. An empty credential means the
    backend is not configured.
    """

    id: str
    endpoint: str = ""
    credential: Optional[str] = None
    system_prompt: str = ""
    response_tag_grammar: TagGrammar = "bracket"
    model: str = ""
    timeout_seconds: float = 30.0
    credential_env: str = ""
    api_version: Optional[str] = None

    @property
    def configured(self) -> bool:
        return bool(self.credential) and bool(self.endpoint)

    def require_credential(self) -> None:
        if not self.credential:
            raise ConfigurationError(self.id, self.credential_env or "credential")
        if not self.endpoint:
            raise ConfigurationError(self.id, "endpoint")


@dataclass(frozen=True)
class ProviderReply:
    text: str
    grounding_links: List[GroundingLink] = field(default_factory=list)


def _env_timeout() -> float:
    raw = os.getenv("LLM_TIMEOUT_SECONDS", "30")
    try:
        return float(raw)
    except ValueError:
        return 30.0


def build_provider_configs(timeout_seconds: Optional[float] = None) -> Dict[str, ProviderConfig]:
    """
    从环境变量构建所有供应商配置 - Build All Provider Configs from Environment

    参数 Parameters:
        timeout_seconds: 单次调用超时（秒），默认读取 LLM_TIMEOUT_SECONDS
                         Per-call timeout in seconds, defaults to LLM_TIMEOUT_SECONDS

    返回 Returns:
        以供应商 id 为键的配置字典
        Config dict keyed by provider id
    """
    timeout = timeout_seconds if timeout_seconds is not None else _env_timeout()
    gemini_key_env = "GEMINI_API_KEY" if os.getenv("GEMINI_API_KEY") else "API_KEY"
    copilot_key_env = "COPILOT_API_KEY" if os.getenv("COPILOT_API_KEY") else "AZURE_API_KEY"

    return {
        "gemini": ProviderConfig(
            id="gemini",
            endpoint=os.getenv("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/"),
            credential=os.getenv(gemini_key_env),
            system_prompt=SYSTEM_PROMPTS["grounding"],
            response_tag_grammar="grounding",
            model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
            timeout_seconds=timeout,
            credential_env="GEMINI_API_KEY",
        ),
        "openai": ProviderConfig(
            id="openai",
            endpoint=os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1"),
            credential=os.getenv("OPENAI_API_KEY"),
            system_prompt=SYSTEM_PROMPTS["bracket"],
            response_tag_grammar="bracket",
            model=os.getenv("OPENAI_MODEL", "gpt-4o"),
            timeout_seconds=timeout,
            credential_env="OPENAI_API_KEY",
        ),
        "copilot": ProviderConfig(
            id="copilot",
            endpoint=os.getenv("COPILOT_BASE_URL", "https://api.openai.com/v1"),
            credential=os.getenv(copilot_key_env),
            system_prompt=SYSTEM_PROMPTS["bracket"],
            response_tag_grammar="bracket",
            model=os.getenv("COPILOT_MODEL", "gpt-4o"),
            timeout_seconds=timeout,
            credential_env="COPILOT_API_KEY",
        ),
        "deepseek": ProviderConfig(
            id="deepseek",
            endpoint=os.getenv("DEEPSEEK_BASE_URL", "https://api.deepseek.com/v1"),
            credential=os.getenv("DEEPSEEK_API_KEY"),
            system_prompt=SYSTEM_PROMPTS["labeled"],
            response_tag_grammar="labeled",
            model=os.getenv("DEEPSEEK_MODEL", "deepseek-chat"),
            timeout_seconds=timeout,
            credential_env="DEEPSEEK_API_KEY",
        ),
        "azure": ProviderConfig(
            id="azure",
            endpoint=os.getenv("AZURE_ENDPOINT", ""),
            credential=os.getenv("AZURE_API_KEY"),
            system_prompt=SYSTEM_PROMPTS["labeled"],
            response_tag_grammar="labeled",
            model=os.getenv("AZURE_DEPLOYMENT", "gpt-4o"),
            timeout_seconds=timeout,
            credential_env="AZURE_API_KEY",
            api_version=os.getenv("AZURE_API_VERSION", "2024-06-01"),
        ),
    }


def _message_text(content) -> str:
    if isinstance(content, str):
        return content
    parts = []
    for item in content or []:
        if isinstance(item, str):
            parts.append(item)
        elif isinstance(item, dict) and item.get("type") == "text":
            parts.append(item.get("text", ""))
    return "".join(parts)


class ProviderAdapter:
    """
    供应商适配器基类 - Provider Adapter Base

    send() 先检查凭据（未配置时不发起任何网络请求），再调用 _send()，
    并把未识别的厂商异常交给 translate_error()。
    send() checks the credential first (no network call when unconfigured), then calls
    _send() and hands unrecognised vendor exceptions to translate_error().
    """

    def __init__(self, config: ProviderConfig):
        self.config = config

    def send(self, system_prompt: str, messages: Sequence[BaseMessage]) -> ProviderReply:
        self.config.require_credential()
        try:
            return self._send(system_prompt, messages)
        except SoftMonkError:
            raise
        except Exception as err:
            raise self.translate_error(err) from err

    def _send(self, system_prompt: str, messages: Sequence[BaseMessage]) -> ProviderReply:
        raise NotImplementedError

    def translate_error(self, err: Exception) -> SoftMonkError:
        if isinstance(err, (httpx.TimeoutException, httpx.TransportError, TimeoutError, ConnectionError)):
            return TransientNetworkError(self.config.id, str(err))
        return UpstreamError(self.config.id, str(err))


class GeminiAdapter(ProviderAdapter):
    """Gemini，带 Google Search grounding；链接从搜索元数据带外返回。"""

    def __init__(self, config: ProviderConfig, client: Optional[genai.Client] = None):
        super().__init__(config)
        self._client = client

    def _get_client(self) -> genai.Client:
        if self._client is None:
            self._client = genai.Client(
                api_key=self.config.credential,
                http_options=genai_types.HttpOptions(
                    base_url=self.config.endpoint,
                    timeout=int(self.config.timeout_seconds * 1000),
                ),
            )
        return self._client

    @staticmethod
    def _contents(messages: Sequence[BaseMessage]) -> List[genai_types.Content]:
        contents = []
        for msg in messages:
            role = "model" if isinstance(msg, AIMessage) else "user"
            contents.append(
                genai_types.Content(role=role, parts=[genai_types.Part(text=_message_text(msg.content))])
            )
        return contents

    @staticmethod
    def _grounding_links(response) -> List[GroundingLink]:
        candidates = getattr(response, "candidates", None) or []
        if not candidates:
            return []
        metadata = getattr(candidates[0], "grounding_metadata", None)
        chunks = getattr(metadata, "grounding_chunks", None) or []
        links = []
        for chunk in chunks:
            web = getattr(chunk, "web", None)
            uri = getattr(web, "uri", None)
            if uri:
                links.append(GroundingLink(uri=uri, title=getattr(web, "title", None) or ""))
        return dedupe_links(links)

    def _send(self, system_prompt: str, messages: Sequence[BaseMessage]) -> ProviderReply:
        response = self._get_client().models.generate_content(
            model=self.config.model,
            contents=self._contents(messages),
            config=genai_types.GenerateContentConfig(
                system_instruction=system_prompt,
                tools=[genai_types.Tool(google_search=genai_types.GoogleSearch())],
            ),
        )
        return ProviderReply(text=response.text or "", grounding_links=self._grounding_links(response))

    def translate_error(self, err: Exception) -> SoftMonkError:
        if isinstance(err, genai_errors.APIError):
            detail = err.message or str(err)
            if err.code == 429 or err.status == "RESOURCE_EXHAUSTED":
                return UpstreamRateLimited(self.config.id, detail)
            return UpstreamError(self.config.id, detail, status_code=err.code)
        return super().translate_error(err)


class OpenAICompatibleAdapter(ProviderAdapter):
    """OpenAI 兼容的聊天接口（OpenAI / Copilot / DeepSeek），链接以内联标签给出。"""

    def __init__(self, config: ProviderConfig, llm=None):
        super().__init__(config)
        self._llm = llm

    def _build_llm(self):
        return ChatOpenAI(
            model=self.config.model,
            temperature=0.2,
            api_key=self.config.credential,
            base_url=self.config.endpoint,
            timeout=self.config.timeout_seconds,
            max_retries=0,
        )

    def _get_llm(self):
        if self._llm is None:
            self._llm = self._build_llm()
        return self._llm

    def _send(self, system_prompt: str, messages: Sequence[BaseMessage]) -> ProviderReply:
        payload = [SystemMessage(content=system_prompt), *messages]
        result = self._get_llm().invoke(payload)
        return ProviderReply(text=_message_text(getattr(result, "content", result)))

    def translate_error(self, err: Exception) -> SoftMonkError:
        if isinstance(err, openai.RateLimitError):
            return UpstreamRateLimited(self.config.id, err.message)
        if isinstance(err, openai.APIStatusError):
            if err.status_code == 429:
                return UpstreamRateLimited(self.config.id, err.message)
            return UpstreamError(self.config.id, err.message, status_code=err.status_code)
        if isinstance(err, (openai.APITimeoutError, openai.APIConnectionError)):
            return TransientNetworkError(self.config.id, str(err))
        return super().translate_error(err)


class AzureOpenAIAdapter(OpenAICompatibleAdapter):
    """Azure OpenAI 部署；endpoint 为资源地址，model 为部署名。"""

    def _build_llm(self):
        return AzureChatOpenAI(
            azure_endpoint=self.config.endpoint,
            azure_deployment=self.config.model,
            api_version=self.config.api_version,
            api_key=self.config.credential,
            temperature=0.2,
            timeout=self.config.timeout_seconds,
            max_retries=0,
        )


def build_adapter(config: ProviderConfig) -> ProviderAdapter:
    if config.response_tag_grammar == "grounding":
        return GeminiAdapter(config)
    if config.id == "azure":
        return AzureOpenAIAdapter(config)
    return OpenAICompatibleAdapter(config)


class CallPacer:
    """
    调用节拍器 - Call Pacer

    在进程内所有后端之间排队，保证相邻两次调用至少间隔 min_interval 秒。
    Queues calls across every backend in the process so two consecutive calls start at
    least min_interval seconds apart.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._next_slot = 0.0

    def reserve(self, min_interval: float) -> float:
        """Book the next slot and return how long the caller must wait for it."""
        with self._lock:
            now = time.monotonic()
            slot = max(now, self._next_slot)
            self._next_slot = slot + min_interval
        return max(0.0, slot - now)


_PACER = CallPacer()


def invoke_with_rate_limit(invoke_fn, pacer: Optional[CallPacer] = None):
    """
    带节流的 LLM 调用 - Paced LLM Invocation

    LLM_RATE_LIMIT_ENABLED=true 时启用，间隔由 LLM_MIN_INTERVAL_SECONDS 决定。
    Enabled by LLM_RATE_LIMIT_ENABLED=true; the spacing comes from LLM_MIN_INTERVAL_SECONDS.
    """
    if os.getenv("LLM_RATE_LIMIT_ENABLED", "false").lower() != "true":
        return invoke_fn()

    try:
        min_interval = float(os.getenv("LLM_MIN_INTERVAL_SECONDS", "1.0"))
    except ValueError:
        min_interval = 1.0
    wait = (pacer or _PACER).reserve(min_interval)
    if wait > 0:
        print(f"[PERF] Rate limit wait: {wait:.3f}s")
        time.sleep(wait)
    return invoke_fn()


def invoke_with_turn_timeout(invoke_fn, timeout_seconds: Optional[float] = None, provider_id: str = "llm"):
    """
    带超时控制的 LLM 调用 - LLM Invocation with Timeout Control

    参数 Parameters:
        invoke_fn: 要执行的调用
                   Call to execute
        timeout_seconds: 超时时间（秒），None 或 0 表示不限制
                         Timeout in seconds, None or 0 means no limit
        provider_id: 出错时记录的后端 id
                     Backend id reported on failure

    异常 Raises:
        TransientNetworkError: 超时未返回
                               No answer within the timeout
    """
    if not timeout_seconds:
        return invoke_fn()

    start = time.time()
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"llm-{provider_id}")
    future = executor.submit(invoke_fn)
    try:
        result = future.result(timeout=timeout_seconds)
    except FutureTimeoutError as err:
        print(f"[PERF] {provider_id} call timed out after {time.time() - start:.3f}s (timeout={timeout_seconds}s)")
        raise TransientNetworkError(provider_id, f"no answer after {timeout_seconds}s") from err
    finally:
        # The hung call keeps its worker; nobody waits for it.
        executor.shutdown(wait=False)
    print(f"[PERF] {provider_id} call completed in {time.time() - start:.3f}s")
    return result
