"""Dialogue 模块：对话状态分类与上下文注入"""

from .classifier import (
    AFFIRMATIVE_DEVICE_OPTION,
    CONTEXT_MARKER,
    DECLINE_DEVICE_OPTION,
    OPEN_PROMPT_TYPES,
    AwaitingClarification,
    AwaitingDeviceFlowChoice,
    AwaitingDeviceSelection,
    AwaitingPlatform,
    DialogueState,
    EmptyHistory,
    FollowUp,
    NewQuery,
    classify,
    has_device_flow_keyword,
    last_bot_turn,
)
from .context import (
    FILTER_CLAUSE,
    ContextPreamble,
    DevicePreamble,
    ProviderRequest,
    VerifiedLinkPreamble,
    build_request,
)

__all__ = [
    "AFFIRMATIVE_DEVICE_OPTION",
    "CONTEXT_MARKER",
    "DECLINE_DEVICE_OPTION",
    "OPEN_PROMPT_TYPES",
    "AwaitingClarification",
    "AwaitingDeviceFlowChoice",
    "AwaitingDeviceSelection",
    "AwaitingPlatform",
    "DialogueState",
    "EmptyHistory",
    "FollowUp",
    "NewQuery",
    "classify",
    "has_device_flow_keyword",
    "last_bot_turn",
    "FILTER_CLAUSE",
    "ContextPreamble",
    "DevicePreamble",
    "ProviderRequest",
    "VerifiedLinkPreamble",
    "build_request",
]
