"""
响应解析 - Response Parser

从模型原始文本中提取 type / platform / 链接 / 选项。所有后端共用同一套标签语法。
Extract type, platform, links and options from raw model text. Every backend shares the
same tag grammar.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from ..schemas import (
    BotResponse,
    ConversationTurn,
    GroundingLink,
    coerce_platform,
    dedupe_links,
)

TYPE_TAG_RE = re.compile(r"\[TYPE\]:\s*([\w-]+)")
OPTIONS_RE = re.compile(r"\[OPTIONS\]:\s*(.+)")

# (pattern, title) in match order; first hit wins.
LINK_PATTERNS: List[Tuple[re.Pattern, str]] = [
    (
        re.compile(r"(?:\*Official Source\*|\*Guide\*|\*Video Guide\*|\*\*Official Page\*\*):\s*(https?://[^\s]+)"),
        "Official Source",
    ),
    (re.compile(r"\[DOWNLOAD_LINK\](https?://[^\[\]\s]+)\[/DOWNLOAD_LINK\]"), "Official Source"),
    (re.compile(r"\[VIDEO_LINK\](https?://[^\[\]\s]+)\[/VIDEO_LINK\]"), "Video Guide"),
]

FLOW_TOKENS = frozenset(
    {
        "driver-input-prompt",
        "driver-device-prompt",
        "driver-device-selection",
        "platform-prompt",
        "software-clarification-prompt",
        "question",
    }
)
_ITEM_TOKEN_RE = re.compile(r"^(software|game|driver)(?:-details)?(?:-(.+))?$")
_GUIDE_SOURCE_TYPES = frozenset({"software", "game", "software-list"})
_GUIDE_PHRASES = ("helpful guide", "general step-by-step instructions")


@dataclass(frozen=True)
class ParsedResponse:
    text: str
    type: str = "standard"
    platform: Optional[str] = None
    grounding_links: Tuple[GroundingLink, ...] = ()
    options: Tuple[str, ...] = field(default_factory=tuple)

    def to_bot_response(self) -> BotResponse:
        return BotResponse(
            text=self.text,
            type=self.type,
            platform=self.platform,
            grounding_links=list(self.grounding_links) or None,
            options=list(self.options) or None,
        )


def _guide_platform(history: Sequence[ConversationTurn]) -> Optional[str]:
    for turn in reversed(history):
        if not turn.is_user and turn.type in _GUIDE_SOURCE_TYPES:
            return turn.platform
    return None


def parse_type_tag(token: str, history: Sequence[ConversationTurn] = ()) -> Tuple[str, Optional[str]]:
    """
    解析 [TYPE] 标签 - Parse [TYPE] Token

    返回 Returns:
        (type, platform)；未知标签返回 ("standard", None)，非法平台被丢弃
        (type, platform); unknown tokens give ("standard", None), invalid platforms are dropped
    """
    token = token.strip().lower()
    if token.startswith("software-list"):
        return "software-list", coerce_platform(token[len("software-list-"):])
    if token == "installation-guide":
        return "installation-guide", _guide_platform(history)
    if token in FLOW_TOKENS:
        return token, None
    match = _ITEM_TOKEN_RE.match(token)
    if match:
        return match.group(1), coerce_platform(match.group(2))
    return "standard", None


def extract_links(text: str, grounding_links: Optional[Sequence[GroundingLink]] = None) -> Tuple[str, List[GroundingLink]]:
    """
    提取链接 - Extract Links

    带外 grounding 元数据优先且视为权威，此时不再扫描文本；否则按固定顺序尝试内联模式，
    第一个命中即停止，并从展示文本中删除该片段。
    Out-of-band grounding metadata wins and is authoritative, so the text is left alone.
    Otherwise inline patterns are tried in a fixed order, stopping at the first hit, and the
    matched fragment is removed from the display text.
    """
    if grounding_links:
        return text, dedupe_links(grounding_links)
    for pattern, title in LINK_PATTERNS:
        match = pattern.search(text)
        if match:
            uri = match.group(1).rstrip(".,;")
            stripped = text[: match.start()] + text[match.end():]
            return stripped, [GroundingLink(uri=uri, title=title)]
    return text, []


def parse_options(text: str) -> List[str]:
    match = OPTIONS_RE.search(text or "")
    if not match:
        return []
    raw = match.group(1)
    sep = ";" if ";" in raw else ","
    return [item.strip() for item in raw.split(sep) if item.strip()]


def _tidy(text: str) -> str:
    return re.sub(r"\n{3,}", "\n\n", text).strip()


def parse_response(
    raw_text: str,
    grounding_links: Optional[Sequence[GroundingLink]] = None,
    history: Sequence[ConversationTurn] = (),
) -> ParsedResponse:
    """
    解析模型输出 - Parse Model Output

    参数 Parameters:
        raw_text: 模型原始文本
                  Raw model text
        grounding_links: 带外 grounding 链接（如有）
                         Out-of-band grounding links, if any
        history: 本轮之前的对话历史，用于继承安装指南的平台
                 History before this turn, used to inherit the installation-guide platform

    返回 Returns:
        ParsedResponse
    """
    raw_text = raw_text or ""
    response_type, platform = "standard", None

    tag = TYPE_TAG_RE.search(raw_text)
    if tag:
        response_type, platform = parse_type_tag(tag.group(1), history)
    else:
        lower = raw_text.lower()
        previous = next((t for t in reversed(history) if not t.is_user), None)
        if (
            previous is not None
            and previous.type in _GUIDE_SOURCE_TYPES
            and any(phrase in lower for phrase in _GUIDE_PHRASES)
        ):
            response_type, platform = "installation-guide", previous.platform

    text = TYPE_TAG_RE.sub("", raw_text)
    text, links = extract_links(text, grounding_links)
    return ParsedResponse(
        text=_tidy(text),
        type=response_type,
        platform=platform,
        grounding_links=tuple(links),
        options=tuple(parse_options(text)),
    )
