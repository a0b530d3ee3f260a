from langchain_core.messages import AIMessage, HumanMessage

from softmonk.dialogue import DevicePreamble, ProviderRequest, VerifiedLinkPreamble, build_request
from softmonk.schemas import DeviceRecord, GroundingLink

from conftest import GREETING, bot, user

VLC_URL = "https://www.videolan.org/vlc/download-windows.html"


def test_leading_greeting_is_not_sent():
    request = build_request([GREETING, user("find VLC for windows")])
    payload = request.payload()
    assert len(payload) == 1
    assert isinstance(payload[0], HumanMessage)
    assert payload[0].content == "find VLC for windows"


def test_roles_follow_the_history():
    history = [GREETING, user("steam"), bot("Here is Steam.", type="software"), user("and gimp")]
    payload = build_request(history).payload()
    assert [type(m) for m in payload] == [HumanMessage, AIMessage, HumanMessage]
    assert payload[1].content == "Here is Steam."


def test_verified_link_preamble_replaces_only_the_outbound_text():
    history = [GREETING, user("find VLC for windows")]
    preamble = VerifiedLinkPreamble(name="VLC Media Player", platform="windows", url=VLC_URL)
    request = build_request(history, preamble=preamble, original_request="find VLC for windows")

    text = request.payload()[-1].content
    assert text == (
        f"[CONTEXT: verified link for VLC Media Player on windows = {VLC_URL}; use as sole source]"
        '\n\nOriginal request: "find VLC for windows"'
    )
    # display history untouched
    assert history[-1].text == "find VLC for windows"
    assert request.turns[-1].text == "find VLC for windows"


def test_verified_link_property():
    preamble = VerifiedLinkPreamble(name="VLC Media Player", platform="windows", url=VLC_URL)
    request = build_request([user("vlc windows")], preamble=preamble)
    assert request.verified_link == GroundingLink(uri=VLC_URL, title="Official Source")
    assert build_request([user("vlc windows")]).verified_link is None


def test_device_preamble_uses_original_request():
    device = DeviceRecord(name="Work Laptop", manufacturer="Dell", model="XPS 15", operating_system="Windows 11")
    history = [user("I need a driver"), bot("Which device?", type="driver-device-selection"), user("Work Laptop (Dell XPS 15)")]
    request = build_request(history, preamble=DevicePreamble(device=device), original_request="I need a driver")

    text = request.payload()[-1].content
    assert text.startswith("[CONTEXT: device = Dell XPS 15 running Windows 11]")
    assert text.endswith('Based on this context, please process my original request: "I need a driver"')


def test_price_filter_clause_is_appended():
    text = build_request([user("photo editor")], filter="free").outbound_text()
    assert text == "photo editor\n\n(Important filter constraint: Only show results that are free.)"


def test_all_filter_adds_nothing():
    assert build_request([user("photo editor")], filter="all").outbound_text() == "photo editor"


def test_filter_clause_is_not_added_to_context_turns():
    request = build_request([user("[CONTEXT: something] hi")], filter="paid")
    assert request.outbound_text() == "[CONTEXT: something] hi"


def test_filter_clause_is_not_added_with_a_preamble():
    preamble = VerifiedLinkPreamble(name="Steam", platform="linux", url="https://store.steampowered.com/about/")
    text = build_request([user("steam linux")], filter="paid", preamble=preamble).outbound_text()
    assert "filter constraint" not in text


def test_original_request_overrides_last_text_without_preamble():
    history = [user("I need a driver"), bot("Devices?", type="driver-device-prompt"), user("Yes, for a saved device")]
    request = build_request(history, original_request="I need a driver")
    assert request.payload()[-1].content == "I need a driver"


def test_requests_are_immutable_values():
    request = build_request([user("steam")])
    assert isinstance(request, ProviderRequest)
    assert request == build_request([user("steam")])
