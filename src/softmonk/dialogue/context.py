"""
上下文注入 - Context Injector

把已验证的事实（目录链接、选中的设备）作为结构化前导放在出站请求上，
只在构建供应商负载时才渲染成文本；展示用的历史记录从不被改写。
Verified facts (a catalog link, the selected device) travel as a structured preamble on
the outbound request and are rendered into text only when the provider payload is built.
The display history is never rewritten.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage

from ..schemas import ConversationTurn, DeviceRecord, GroundingLink
from .classifier import CONTEXT_MARKER

FILTER_CLAUSE = "(Important filter constraint: Only show results that are {filter}.)"
VERIFIED_LINK_TITLE = "Official Source"


@dataclass(frozen=True)
class VerifiedLinkPreamble:
    name: str
    platform: str
    url: str

    def render(self) -> str:
        return f"[CONTEXT: verified link for {self.name} on {self.platform} = {self.url}; use as sole source]"

    def follow_with(self, original_request: str) -> str:
        return f'Original request: "{original_request}"'


@dataclass(frozen=True)
class DevicePreamble:
    device: DeviceRecord

    def render(self) -> str:
        d = self.device
        return f"[CONTEXT: device = {d.manufacturer} {d.model} running {d.operating_system}]"

    def follow_with(self, original_request: str) -> str:
        return f'Based on this context, please process my original request: "{original_request}"'


ContextPreamble = Union[VerifiedLinkPreamble, DevicePreamble]


@dataclass(frozen=True)
class ProviderRequest:
    """
    出站供应商请求 - Outbound Provider Request

    turns 是历史的只读副本（不含开头的问候语）；preamble 至多一个。
    turns is a read-only copy of the history without the leading greeting; at most one
    preamble is attached.
    """

    turns: Tuple[ConversationTurn, ...]
    filter: str = "all"
    preamble: Optional[ContextPreamble] = None
    original_request: Optional[str] = None

    @property
    def verified_link(self) -> Optional[GroundingLink]:
        if isinstance(self.preamble, VerifiedLinkPreamble):
            return GroundingLink(uri=self.preamble.url, title=VERIFIED_LINK_TITLE)
        return None

    def outbound_text(self) -> str:
        """Text that replaces the last user turn in the payload."""
        users = [t.text for t in self.turns if t.is_user]
        last = users[-1] if users else ""
        if self.original_request is not None:
            last = self.original_request
        if self.preamble is not None:
            return f"{self.preamble.render()}\n\n{self.preamble.follow_with(last)}"
        if self.filter in ("free", "freemium", "paid") and not last.startswith(CONTEXT_MARKER):
            return f"{last}\n\n{FILTER_CLAUSE.format(filter=self.filter)}"
        return last

    def payload(self) -> List[BaseMessage]:
        messages: List[BaseMessage] = []
        last_user = max((i for i, t in enumerate(self.turns) if t.is_user), default=-1)
        for i, turn in enumerate(self.turns):
            text = self.outbound_text() if i == last_user else turn.text
            if turn.is_user:
                messages.append(HumanMessage(content=text))
            else:
                messages.append(AIMessage(content=text))
        return messages


def build_request(
    history: Sequence[ConversationTurn],
    filter: str = "all",
    preamble: Optional[ContextPreamble] = None,
    original_request: Optional[str] = None,
) -> ProviderRequest:
    """
    构建出站请求 - Build Outbound Request

    参数 Parameters:
        history: 完整对话历史；开头的机器人问候语不会发送
                 Full history; a leading bot greeting is not sent
        filter: 价格过滤条件 all/free/freemium/paid
                Price filter all/free/freemium/paid
        preamble: 可选的上下文前导
                  Optional context preamble
        original_request: 前导之后附带的原始请求文本
                          Original request text that follows the preamble

    返回 Returns:
        ProviderRequest
    """
    turns = tuple(history)
    if turns and not turns[0].is_user:
        turns = turns[1:]
    return ProviderRequest(
        turns=turns,
        filter=filter,
        preamble=preamble,
        original_request=original_request,
    )
