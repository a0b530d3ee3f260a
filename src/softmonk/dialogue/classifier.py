"""
对话状态分类 - Conversation Classifier

只看历史记录（最后一条机器人消息的 type 与最后一条用户消息的文本），
不做任何网络调用。同一段历史总是得到同一个状态。
Looks only at the history (the last bot turn's type and the last user turn's text) and
never touches the network. Replaying the same history always yields the same state.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Union

from ..schemas import ConversationTurn

CONTEXT_MARKER = "[CONTEXT:"
AFFIRMATIVE_DEVICE_OPTION = "Yes, for a saved device"
DECLINE_DEVICE_OPTION = "No, for something else"

# Bot prompts that expect a direct answer rather than a fresh request.
OPEN_PROMPT_TYPES = frozenset(
    {
        "driver-input-prompt",
        "driver-device-prompt",
        "driver-device-selection",
        "platform-prompt",
        "software-clarification-prompt",
    }
)

_QUOTED_NAME_RE = re.compile(r'"(.*?)"')


@dataclass(frozen=True)
class NewQuery:
    text: str
    check_devices: bool = True


@dataclass(frozen=True)
class AwaitingClarification:
    selection: str


@dataclass(frozen=True)
class AwaitingPlatform:
    reply: str
    software_name: Optional[str]
    original_request: Optional[str]


@dataclass(frozen=True)
class AwaitingDeviceFlowChoice:
    original_request: Optional[str]


@dataclass(frozen=True)
class AwaitingDeviceSelection:
    reply: str
    original_request: Optional[str]


@dataclass(frozen=True)
class EmptyHistory:
    pass


@dataclass(frozen=True)
class FollowUp:
    text: str


DialogueState = Union[
    NewQuery,
    AwaitingClarification,
    AwaitingPlatform,
    AwaitingDeviceFlowChoice,
    AwaitingDeviceSelection,
    EmptyHistory,
    FollowUp,
]


def last_bot_turn(history: Sequence[ConversationTurn]) -> Optional[ConversationTurn]:
    for turn in reversed(history):
        if not turn.is_user:
            return turn
    return None


def _user_texts(history: Sequence[ConversationTurn]) -> List[str]:
    return [turn.text for turn in history if turn.is_user]


def _nth_previous_user_text(history: Sequence[ConversationTurn], n: int) -> Optional[str]:
    texts = _user_texts(history)
    if len(texts) <= n:
        return None
    return texts[-1 - n]


def _device_request(history: Sequence[ConversationTurn]) -> Optional[str]:
    # user: request -> bot: device prompt -> user: "Yes..." -> bot: selection -> user: device
    for text in reversed(_user_texts(history)[:-1]):
        if text.strip() != AFFIRMATIVE_DEVICE_OPTION:
            return text
    return None


def quoted_software_name(bot_text: str) -> Optional[str]:
    match = _QUOTED_NAME_RE.search(bot_text or "")
    if match and match.group(1).strip():
        return match.group(1).strip()
    return None


def has_device_flow_keyword(text: str, keywords: Iterable[str]) -> bool:
    lower = (text or "").lower()
    return any(re.search(rf"\b{re.escape(k)}\b", lower) for k in keywords)


def classify(history: Sequence[ConversationTurn]) -> DialogueState:
    """
    分类对话状态 - Classify Dialogue State

    规则按顺序匹配，第一条命中即返回。
    Rules are evaluated in order; the first match wins.

    参数 Parameters:
        history: 完整的对话历史（只读）
                 Full conversation history (read-only)

    返回 Returns:
        DialogueState 的某个变体
        One DialogueState variant
    """
    if not history or not history[-1].is_user or not history[-1].text.strip():
        return EmptyHistory()

    user = history[-1]
    text = user.text.strip()
    bot = last_bot_turn(history)
    bot_type = bot.type if bot is not None else None

    if bot_type == "driver-device-selection":
        return AwaitingDeviceSelection(reply=text, original_request=_device_request(history))

    if bot_type == "driver-device-prompt" and text == AFFIRMATIVE_DEVICE_OPTION:
        return AwaitingDeviceFlowChoice(original_request=_nth_previous_user_text(history, 1))

    if bot_type == "software-clarification-prompt":
        return AwaitingClarification(selection=text)

    if bot_type == "platform-prompt":
        return AwaitingPlatform(
            reply=text,
            software_name=quoted_software_name(bot.text),
            original_request=_nth_previous_user_text(history, 1),
        )

    if not text.startswith(CONTEXT_MARKER) and bot_type not in OPEN_PROMPT_TYPES:
        return NewQuery(text=text)
    return FollowUp(text=text)
