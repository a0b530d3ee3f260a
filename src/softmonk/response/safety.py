"""
安全后处理 - Safety Post-Processor

预先验证过的目录链接一旦存在，就必须是第一个 grounding 链接，不能被模型给出的链接覆盖。
Once a pre-verified catalog link exists it must be the first grounding link and can never
be shadowed by a link the model produced.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Optional

from ..schemas import GroundingLink
from .parser import ParsedResponse


def secure(parsed: ParsedResponse, verified_link: Optional[GroundingLink]) -> ParsedResponse:
    """
    合并已验证链接 - Merge Verified Link

    已存在相同 uri 时移到最前而不是重复插入；standard 升级为 software。幂等。
    An entry with the same uri is moved to the front instead of duplicated; standard is
    upgraded to software. Idempotent.
    """
    if verified_link is None:
        return parsed

    rest = tuple(link for link in parsed.grounding_links if link.uri != verified_link.uri)
    existing = next((link for link in parsed.grounding_links if link.uri == verified_link.uri), None)
    first = existing if existing is not None else verified_link
    response_type = "software" if parsed.type == "standard" else parsed.type
    return replace(parsed, grounding_links=(first,) + rest, type=response_type)
