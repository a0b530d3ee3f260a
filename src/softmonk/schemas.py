from __future__ import annotations

from typing import Any, FrozenSet, Iterable, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator


Platform = Literal["windows", "macos", "linux", "android"]
PLATFORMS: tuple[str, ...] = ("windows", "macos", "linux", "android")
PLATFORM_LABELS = {
    "windows": "Windows",
    "macos": "macOS",
    "linux": "Linux",
    "android": "Android",
}

SoftwareFilter = Literal["all", "free", "freemium", "paid"]
Sender = Literal["user", "bot"]

# Message types understood by the chat client.
MessageType = Literal[
    "standard",
    "software",
    "game",
    "driver",
    "software-list",
    "installation-guide",
    "question",
    "driver-input-prompt",
    "driver-device-prompt",
    "driver-device-selection",
    "platform-prompt",
    "software-clarification-prompt",
]
DOWNLOAD_TYPES = frozenset({"software", "game", "driver"})


def coerce_platform(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip().lower() in PLATFORMS:
        return value.strip().lower()
    return None


class GroundingLink(BaseModel):
    model_config = ConfigDict(frozen=True)

    uri: str
    title: str = ""

    def as_chunk(self) -> dict:
        return {"web": {"uri": self.uri, "title": self.title}}


def dedupe_links(links: Iterable[GroundingLink]) -> List[GroundingLink]:
    out: List[GroundingLink] = []
    seen = set()
    for link in links:
        if not link.uri or link.uri in seen:
            continue
        seen.add(link.uri)
        out.append(link)
    return out


def _unwrap_chunk(raw: Any) -> Any:
    # Wire format is {"web": {"uri", "title"}}; flat {"uri", "title"} is accepted too.
    if isinstance(raw, dict) and isinstance(raw.get("web"), dict):
        return raw["web"]
    return raw


class ConversationTurn(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = ""
    text: str = ""
    sender: Sender
    type: Optional[str] = None
    platform: Optional[Platform] = None
    grounding_links: Optional[List[GroundingLink]] = Field(
        default=None,
        validation_alias=AliasChoices("groundingChunks", "grounding_links", "groundingLinks"),
    )

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        # Browser clients stamp new turns with Date.now().
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("platform", mode="before")
    @classmethod
    def _drop_unknown_platform(cls, value: Any) -> Optional[str]:
        return coerce_platform(value)

    @field_validator("grounding_links", mode="before")
    @classmethod
    def _normalize_links(cls, value: Any) -> Any:
        if value is None:
            return None
        links = [GroundingLink.model_validate(_unwrap_chunk(item)) for item in value]
        return dedupe_links(links)

    @property
    def is_user(self) -> bool:
        return self.sender == "user"


class BotResponse(BaseModel):
    text: str
    type: str = "standard"
    platform: Optional[Platform] = None
    grounding_links: Optional[List[GroundingLink]] = None
    options: Optional[List[str]] = None

    def to_wire(self) -> dict:
        payload: dict = {"text": self.text, "type": self.type}
        if self.platform:
            payload["platform"] = self.platform
        if self.grounding_links:
            payload["groundingChunks"] = [link.as_chunk() for link in self.grounding_links]
        if self.options:
            payload["options"] = list(self.options)
        return payload


class ChatRequest(BaseModel):
    history: List[ConversationTurn] = Field(default_factory=list)
    filter: SoftwareFilter = "all"
    provider: Optional[str] = None


class CatalogItem(BaseModel):
    """Verified software entry. Per-platform URLs win over the download pattern."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    download_pattern: str = Field(
        default="", validation_alias=AliasChoices("downloadPattern", "download_pattern")
    )
    os_compatibility: FrozenSet[Platform] = Field(
        default_factory=frozenset,
        validation_alias=AliasChoices("osCompatibility", "os_compatibility"),
    )
    slug: str = ""
    homepage: str = ""
    windows: Optional[str] = None
    mac: Optional[str] = None
    linux: Optional[str] = None
    android: Optional[str] = None

    @field_validator("os_compatibility", mode="before")
    @classmethod
    def _known_platforms(cls, value: Any) -> Any:
        if value is None:
            return frozenset()
        return frozenset(p for p in (coerce_platform(v) for v in value) if p)

    @model_validator(mode="after")
    def _derive_compatibility(self) -> "CatalogItem":
        if not self.os_compatibility:
            derived = frozenset(p for p in PLATFORMS if self._explicit_url(p))
            object.__setattr__(self, "os_compatibility", derived)
        if not self.download_pattern and self.homepage:
            object.__setattr__(self, "download_pattern", self.homepage)
        return self

    def _explicit_url(self, platform: str) -> Optional[str]:
        key = "mac" if platform == "macos" else platform
        return getattr(self, key, None) or None

    def url_for(self, platform: str) -> Optional[str]:
        explicit = self._explicit_url(platform)
        if explicit:
            return explicit
        if platform not in self.os_compatibility or not self.download_pattern:
            return None
        return self.download_pattern.replace("{platform}", platform)

    def available_platforms(self) -> List[str]:
        return [p for p in PLATFORMS if self.url_for(p)]


class DeviceRecord(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(validation_alias=AliasChoices("name", "device_name"))
    manufacturer: str = ""
    model: str = ""
    serial_number: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("serial_number", "serialNumber", "serial")
    )
    operating_system: str = Field(
        default="", validation_alias=AliasChoices("operating_system", "operatingSystem", "os")
    )

    def option_label(self) -> str:
        return f"{self.name} ({self.manufacturer} {self.model})"


class Session(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
