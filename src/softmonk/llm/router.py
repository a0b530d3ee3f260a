"""
供应商路由 - Provider Router

按调用方给出的 id 选择后端；未知或缺省时回落到默认后端。单次尝试，带超时与可选节流。
Selects a backend by caller-supplied id, falling back to the default when unknown or
absent. One attempt per call, with a timeout and optional pacing.
"""

from __future__ import annotations

import os
import threading
from typing import Dict, List, Optional

from ..dialogue.context import ProviderRequest
from .providers import (
    ProviderAdapter,
    ProviderConfig,
    ProviderReply,
    build_adapter,
    build_provider_configs,
    invoke_with_rate_limit,
    invoke_with_turn_timeout,
)


class ProviderRouter:
    def __init__(
        self,
        configs: Optional[Dict[str, ProviderConfig]] = None,
        adapters: Optional[Dict[str, ProviderAdapter]] = None,
        default_provider: Optional[str] = None,
    ):
        self.configs = dict(configs) if configs is not None else build_provider_configs()
        self._adapters: Dict[str, ProviderAdapter] = dict(adapters or {})
        for provider_id, adapter in self._adapters.items():
            self.configs.setdefault(provider_id, adapter.config)
        default = (default_provider or os.getenv("SOFTMONK_DEFAULT_PROVIDER", "gemini")).strip().lower()
        if default not in self.configs:
            default = next(iter(self.configs), default)
        self.default_provider = default
        self._lock = threading.Lock()

    def select(self, provider_id: Optional[str] = None) -> str:
        key = (provider_id or "").strip().lower()
        if not key:
            return self.default_provider
        if key not in self.configs:
            print(f"[WARN] Unknown provider '{provider_id}', using {self.default_provider}")
            return self.default_provider
        return key

    def adapter(self, provider_id: str) -> ProviderAdapter:
        with self._lock:
            adapter = self._adapters.get(provider_id)
            if adapter is None:
                adapter = build_adapter(self.configs[provider_id])
                self._adapters[provider_id] = adapter
            return adapter

    def send(self, request: ProviderRequest, provider_id: Optional[str] = None) -> ProviderReply:
        """
        发送一次供应商请求 - Send One Provider Request

        参数 Parameters:
            request: 已注入上下文的出站请求
                     Outbound request with any context attached
            provider_id: 调用方指定的后端 id
                         Backend id chosen by the caller

        返回 Returns:
            ProviderReply（原始文本 + 带外 grounding 链接）
            ProviderReply (raw text plus out-of-band grounding links)
        """
        selected = self.select(provider_id)
        adapter = self.adapter(selected)
        config = adapter.config
        print(f"[DEBUG] Provider={selected} model={config.model} grammar={config.response_tag_grammar}")
        return self.invoke(adapter, config.system_prompt, request, config.timeout_seconds)

    def invoke(
        self,
        adapter: ProviderAdapter,
        system_prompt: str,
        request: ProviderRequest,
        timeout_seconds: Optional[float],
    ) -> ProviderReply:
        # Single attempt; a retry policy would wrap this call.
        messages = request.payload()
        return invoke_with_turn_timeout(
            lambda: invoke_with_rate_limit(lambda: adapter.send(system_prompt, messages)),
            timeout_seconds=timeout_seconds,
            provider_id=adapter.config.id,
        )

    def describe(self) -> List[dict]:
        return [
            {
                "id": cfg.id,
                "model": cfg.model,
                "grammar": cfg.response_tag_grammar,
                "configured": cfg.configured,
                "default": cfg.id == self.default_provider,
            }
            for cfg in self.configs.values()
        ]
