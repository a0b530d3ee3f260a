from __future__ import annotations

import time
import traceback
from typing import Callable, Dict, List, Literal, Optional, Sequence, TypedDict, Union, get_args

from langgraph.graph import END, StateGraph

from .catalog import CatalogIndex, PlatformHints, detect_platform
from .devices import DeviceStore
from .dialogue import (
    AFFIRMATIVE_DEVICE_OPTION,
    DECLINE_DEVICE_OPTION,
    AwaitingClarification,
    AwaitingDeviceFlowChoice,
    AwaitingDeviceSelection,
    AwaitingPlatform,
    DevicePreamble,
    DialogueState,
    EmptyHistory,
    FollowUp,
    NewQuery,
    ProviderRequest,
    VerifiedLinkPreamble,
    build_request,
    classify,
    has_device_flow_keyword,
)
from .errors import CatalogUnavailableError, EmptyHistoryError, SoftMonkError
from .llm import ProviderReply, ProviderRouter
from .response import ParsedResponse, parse_response, secure
from .schemas import PLATFORM_LABELS, BotResponse, CatalogItem, ConversationTurn, DeviceRecord, Session

CLARIFICATION_PROMPT = "I found a couple of potential matches for that. Which one are you looking for?\n[OPTIONS]: {options}"
PLATFORM_PROMPT = 'I found "{name}". Which operating system do you need it for?\n[OPTIONS]: {options}'
PLATFORM_AFTER_CLARIFICATION_PROMPT = 'Great! For "{name}", which operating system do you need?\n[OPTIONS]: {options}'
DEVICE_FLOW_PROMPT = (
    "I see you have some saved devices. Are you searching for one of them?\n"
    f"[OPTIONS]: {AFFIRMATIVE_DEVICE_OPTION}; {DECLINE_DEVICE_OPTION}"
)
DEVICE_SELECTION_PROMPT = "Great! Which device is it for?\n[OPTIONS]: {options}"
GENERIC_FAILURE_MESSAGE = SoftMonkError.friendly_message

Prepared = Union[BotResponse, ProviderRequest]


class ResolveState(TypedDict, total=False):
    history: List[ConversationTurn]
    filter: str
    session: Optional[Session]
    provider_id: Optional[str]
    hints: Optional[PlatformHints]
    dialogue: DialogueState
    request: Optional[ProviderRequest]
    reply: Optional[ProviderReply]
    parsed: Optional[ParsedResponse]
    response: Optional[BotResponse]
    fallback_reason: Optional[str]


def _prompt(text: str, response_type: str, options: Sequence[str]) -> BotResponse:
    return BotResponse(text=text, type=response_type, options=list(options) or None)


def _platform_options(item: CatalogItem) -> List[str]:
    return [PLATFORM_LABELS[p] for p in item.available_platforms()]


class SoftMonkGraph:
    """
    下载解析编排 - Download Resolution Orchestrator

    classify -> prepare（按对话状态分派，可能直接回复）-> call_provider -> parse -> secure。
    能确定回答时在调用模型之前结束；任何错误都转换成友好的 standard 回复。
    classify -> prepare (dispatch on the dialogue state, may answer directly) ->
    call_provider -> parse -> secure. Deterministic answers end before any model call;
    every error becomes a friendly standard response.
    """

    def __init__(
        self,
        catalog: CatalogIndex,
        router: ProviderRouter,
        devices: Optional[DeviceStore] = None,
    ):
        self.catalog = catalog
        self.router = router
        self.devices = devices
        self._handlers: Dict[type, Callable[[ResolveState, DialogueState], Prepared]] = {
            NewQuery: self._on_new_query,
            AwaitingClarification: self._on_clarification,
            AwaitingPlatform: self._on_platform_reply,
            AwaitingDeviceFlowChoice: self._on_device_flow_choice,
            AwaitingDeviceSelection: self._on_device_selection,
            EmptyHistory: self._on_empty_history,
            FollowUp: self._on_follow_up,
        }
        missing = set(get_args(DialogueState)) - set(self._handlers)
        if missing:
            raise TypeError(f"unhandled dialogue states: {sorted(t.__name__ for t in missing)}")
        self.graph = self._build_graph()

    def _build_graph(self):
        builder = StateGraph(ResolveState)
        builder.add_node("classify", self.classify_history)
        builder.add_node("prepare", self.prepare)
        builder.add_node("call_provider", self.call_provider)
        builder.add_node("parse", self.parse_reply)
        builder.add_node("secure", self.secure_reply)

        builder.set_entry_point("classify")
        builder.add_edge("classify", "prepare")
        builder.add_conditional_edges(
            "prepare",
            self.route_after_prepare,
            {"respond": END, "call_provider": "call_provider"},
        )
        builder.add_conditional_edges(
            "call_provider",
            self.route_after_provider,
            {"respond": END, "parse": "parse"},
        )
        builder.add_edge("parse", "secure")
        builder.add_edge("secure", END)
        return builder.compile()

    @staticmethod
    def route_after_prepare(state: ResolveState) -> Literal["respond", "call_provider"]:
        return "respond" if state.get("response") is not None else "call_provider"

    @staticmethod
    def route_after_provider(state: ResolveState) -> Literal["respond", "parse"]:
        return "respond" if state.get("response") is not None else "parse"

    # --- nodes ---

    def classify_history(self, state: ResolveState):
        dialogue = classify(state["history"])
        print(f"[DEBUG] Dialogue state: {dialogue}")
        return {"dialogue": dialogue}

    def prepare(self, state: ResolveState):
        start = time.time()
        dialogue = state["dialogue"]
        prepared = self._handlers[type(dialogue)](state, dialogue)
        print(f"[PERF] Prepare ({type(dialogue).__name__}): {time.time() - start:.3f}s")
        if isinstance(prepared, BotResponse):
            return {"response": prepared}
        return {"request": prepared}

    def call_provider(self, state: ResolveState):
        start = time.time()
        try:
            reply = self.router.send(state["request"], state.get("provider_id"))
        except Exception as err:
            reason = self._classify_fallback_reason(err)
            if isinstance(err, SoftMonkError):
                print(f"[WARN] Provider call failed ({reason}): {err}")
                message = err.friendly_message
            else:
                print(f"[WARN] Provider call crashed ({reason}): {err}")
                traceback.print_exc()
                message = GENERIC_FAILURE_MESSAGE
            return {"response": BotResponse(text=message), "fallback_reason": reason}
        print(f"[PERF] Provider call: {time.time() - start:.3f}s")
        return {"reply": reply}

    def parse_reply(self, state: ResolveState):
        reply = state["reply"]
        parsed = parse_response(reply.text, reply.grounding_links, state["history"])
        return {"parsed": parsed}

    def secure_reply(self, state: ResolveState):
        request = state["request"]
        parsed = secure(state["parsed"], request.verified_link)
        return {"response": parsed.to_bot_response()}

    # --- dialogue handlers ---

    def _plain_request(self, state: ResolveState, original_request: Optional[str] = None) -> ProviderRequest:
        return build_request(state["history"], state.get("filter", "all"), original_request=original_request)

    def _verified_request(
        self, state: ResolveState, item: CatalogItem, platform: str, url: str, original_request: str
    ) -> ProviderRequest:
        print(f"[DEBUG] Verified link for {item.name} on {platform}: {url}")
        return build_request(
            state["history"],
            state.get("filter", "all"),
            preamble=VerifiedLinkPreamble(name=item.name, platform=platform, url=url),
            original_request=original_request,
        )

    def _on_new_query(self, state: ResolveState, dialogue: NewQuery) -> Prepared:
        text = dialogue.text
        session = state.get("session")
        if (
            dialogue.check_devices
            and session is not None
            and has_device_flow_keyword(text, self.catalog.matching.device_flow_keywords)
            and self._devices(session)
        ):
            return _prompt(
                DEVICE_FLOW_PROMPT,
                "driver-device-prompt",
                [AFFIRMATIVE_DEVICE_OPTION, DECLINE_DEVICE_OPTION],
            )

        matches = self._match(text)
        if len(matches) > 1:
            names = [item.name for item in matches]
            return _prompt(
                CLARIFICATION_PROMPT.format(options=", ".join(names)),
                "software-clarification-prompt",
                names,
            )
        if not matches:
            return self._plain_request(state, original_request=text)

        item = matches[0]
        platform = detect_platform(text, state.get("hints"))
        if platform:
            url = item.url_for(platform)
            if url:
                return self._verified_request(state, item, platform, url, original_request=text)
            return self._plain_request(state, original_request=text)

        options = _platform_options(item)
        if options:
            return _prompt(
                PLATFORM_PROMPT.format(name=item.name, options=", ".join(options)),
                "platform-prompt",
                options,
            )
        return self._plain_request(state, original_request=text)

    def _on_clarification(self, state: ResolveState, dialogue: AwaitingClarification) -> Prepared:
        matches = self._match(dialogue.selection)
        if matches:
            item = matches[0]
            options = _platform_options(item)
            if options:
                return _prompt(
                    PLATFORM_AFTER_CLARIFICATION_PROMPT.format(name=item.name, options=", ".join(options)),
                    "platform-prompt",
                    options,
                )
        return self._plain_request(state)

    def _on_platform_reply(self, state: ResolveState, dialogue: AwaitingPlatform) -> Prepared:
        platform = detect_platform(dialogue.reply)
        if platform and dialogue.software_name:
            item = self._find(dialogue.software_name)
            url = item.url_for(platform) if item is not None else None
            if url:
                request = dialogue.original_request or dialogue.reply
                return self._verified_request(state, item, platform, url, original_request=request)
        return self._plain_request(state)

    def _on_device_flow_choice(self, state: ResolveState, dialogue: AwaitingDeviceFlowChoice) -> Prepared:
        devices = self._devices(state.get("session"))
        if devices:
            labels = [device.option_label() for device in devices]
            return _prompt(
                DEVICE_SELECTION_PROMPT.format(options=", ".join(labels)),
                "driver-device-selection",
                labels,
            )
        if dialogue.original_request:
            return self._on_new_query(state, NewQuery(text=dialogue.original_request, check_devices=False))
        return self._plain_request(state)

    def _on_device_selection(self, state: ResolveState, dialogue: AwaitingDeviceSelection) -> Prepared:
        devices = self._devices(state.get("session"))
        selected = next((d for d in devices if dialogue.reply.startswith(d.name)), None)
        if selected is None or not dialogue.original_request:
            return self._on_follow_up(state, FollowUp(text=dialogue.reply))
        print(f"[DEBUG] Device selected: {selected.name}")
        return build_request(
            state["history"],
            state.get("filter", "all"),
            preamble=DevicePreamble(device=selected),
            original_request=dialogue.original_request,
        )

    def _on_empty_history(self, state: ResolveState, dialogue: EmptyHistory) -> Prepared:
        return BotResponse(text=EmptyHistoryError.friendly_message)

    def _on_follow_up(self, state: ResolveState, dialogue: FollowUp) -> Prepared:
        return self._plain_request(state)

    # --- collaborators ---

    def _match(self, text: str) -> List[CatalogItem]:
        try:
            return self.catalog.match(text)
        except CatalogUnavailableError as err:
            print(f"[WARN] Catalog unavailable, continuing without a match: {err}")
            return []

    def _find(self, name: str) -> Optional[CatalogItem]:
        try:
            return self.catalog.find(name)
        except CatalogUnavailableError as err:
            print(f"[WARN] Catalog unavailable, continuing without a match: {err}")
            return None

    def _devices(self, session: Optional[Session]) -> List[DeviceRecord]:
        if session is None or self.devices is None:
            return []
        try:
            return self.devices.list_for_user(session.user_id)
        except Exception as err:
            print(f"[WARN] Device lookup failed for user {session.user_id}: {err}")
            return []

    @staticmethod
    def _classify_fallback_reason(err: Exception) -> str:
        if isinstance(err, SoftMonkError):
            return err.reason
        name = type(err).__name__.lower()
        msg = str(err).lower()
        if "ratelimit" in name or "rate limit" in msg or "429" in msg:
            return "rate_limited"
        if "timeout" in name or "timeout" in msg:
            return "timeout"
        return "model_error"

    def resolve(
        self,
        history: Sequence[ConversationTurn],
        filter: str = "all",
        session: Optional[Session] = None,
        provider_id: Optional[str] = None,
        hints: Optional[PlatformHints] = None,
    ) -> BotResponse:
        """
        解析一轮对话 - Resolve One Chat Turn

        参数 Parameters:
            history: 完整对话历史（不会被修改）
                     Full conversation history (never mutated)
            filter: 价格过滤 all/free/freemium/paid
                    Price filter all/free/freemium/paid
            session: 已登录用户的会话，可为空
                     Signed-in user's session, may be None
            provider_id: 后端 id，缺省使用默认后端
                         Backend id, default backend when absent
            hints: 浏览器上报的平台信息
                   Platform hints reported by the browser

        返回 Returns:
            BotResponse，永不抛出异常
            BotResponse; never raises
        """
        start = time.time()
        initial: ResolveState = {
            "history": list(history),
            "filter": filter,
            "session": session,
            "provider_id": provider_id,
            "hints": hints,
            "request": None,
            "reply": None,
            "parsed": None,
            "response": None,
            "fallback_reason": None,
        }
        try:
            out = self.graph.invoke(initial)
            response = out.get("response") or BotResponse(text=GENERIC_FAILURE_MESSAGE)
        except Exception as err:
            print(f"[WARN] Resolve failed ({self._classify_fallback_reason(err)}): {err}")
            traceback.print_exc()
            response = BotResponse(text=GENERIC_FAILURE_MESSAGE)
        print(f"[PERF] Resolve total: {time.time() - start:.3f}s type={response.type}")
        return response
