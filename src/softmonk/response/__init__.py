"""Response 模块：标签解析与安全后处理"""

from .parser import (
    LINK_PATTERNS,
    ParsedResponse,
    extract_links,
    parse_options,
    parse_response,
    parse_type_tag,
)
from .safety import secure

__all__ = [
    "LINK_PATTERNS",
    "ParsedResponse",
    "extract_links",
    "parse_options",
    "parse_response",
    "parse_type_tag",
    "secure",
]
