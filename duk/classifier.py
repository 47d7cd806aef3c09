"""Header-based caller classification.

An ordered rule table, evaluated top to bottom; the first matching rule
decides. Callers matching no rule are treated as non-interactive, so an
uncertain request gets the image rather than a redirect.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Mapping


class ClientKind(str, Enum):
    BROWSER = "browser"
    NON_INTERACTIVE = "non-interactive"
    PREVIEW_BOT = "preview-bot"


PREVIEW_BOT_SIGNATURES = (
    "facebookexternalhit",
    "facebot",
    "twitterbot",
    "linkedinbot",
    "slackbot",
    "slack-imgproxy",
    "discordbot",
    "telegrambot",
    "whatsapp",
    "skypeuripreview",
    "pinterestbot",
    "redditbot",
    "embedly",
    "vkshare",
    "line-poker",
    "kakaotalk-scrap",
    "iframely",
    "google-pagerenderer",
    "applebot",
)

TOOL_SIGNATURES = (
    "curl/",
    "wget/",
    "python-requests",
    "python-urllib",
    "python-httpx",
    "aiohttp",
    "go-http-client",
    "okhttp",
    "java/",
    "libwww-perl",
    "postmanruntime",
    "axios/",
    "node-fetch",
    "httpie",
)

_BROWSER_UA = re.compile(r"Mozilla/5\.0 .*(AppleWebKit|Gecko|Trident|Chrome|Safari|Firefox|Edg|OPR)")


@dataclass(frozen=True)
class RequestHeaders:
    user_agent: str = ""
    accept: str = ""
    referer: str = ""

    @classmethod
    def from_mapping(cls, headers: Mapping[str, str]) -> "RequestHeaders":
        lowered = {k.lower(): v for k, v in headers.items()}
        return cls(
            user_agent=lowered.get("user-agent", ""),
            accept=lowered.get("accept", ""),
            referer=lowered.get("referer", "") or lowered.get("referrer", ""),
        )


@dataclass(frozen=True)
class Rule:
    name: str
    kind: ClientKind
    matches: Callable[[RequestHeaders], bool]


def _is_preview_bot(h: RequestHeaders) -> bool:
    ua = h.user_agent.lower()
    return any(sig in ua for sig in PREVIEW_BOT_SIGNATURES)


def _is_tool(ua: str) -> bool:
    ua = ua.lower()
    return any(sig in ua for sig in TOOL_SIGNATURES)


def _is_browser_navigation(h: RequestHeaders) -> bool:
    if not _BROWSER_UA.search(h.user_agent) or _is_tool(h.user_agent):
        return False
    return "text/html" in h.accept.lower()


RULES: tuple[Rule, ...] = (
    Rule("preview-bot", ClientKind.PREVIEW_BOT, _is_preview_bot),
    Rule("browser", ClientKind.BROWSER, _is_browser_navigation),
)

DEFAULT_RULE = "default"


def classify_with_rule(headers: Mapping[str, str] | RequestHeaders) -> tuple[ClientKind, str]:
    if not isinstance(headers, RequestHeaders):
        headers = RequestHeaders.from_mapping(headers)
    for rule in RULES:
        if rule.matches(headers):
            return rule.kind, rule.name
    return ClientKind.NON_INTERACTIVE, DEFAULT_RULE


def classify(headers: Mapping[str, str] | RequestHeaders) -> ClientKind:
    return classify_with_rule(headers)[0]


def wants_json(headers: Mapping[str, str]) -> bool:
    accept = RequestHeaders.from_mapping(headers).accept.lower()
    return "application/json" in accept and "text/html" not in accept
