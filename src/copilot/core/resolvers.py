"""Heuristics that pick the effective browsing action for one loop step.

Each resolver is a pure function of a ``ResolutionContext``; the agent walks
``RESOLVERS`` in priority order, applies whatever a resolver returns and updates
the context flags before consulting the next one.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Literal
from urllib.parse import urlparse

from ..browser.schema import page_contains_url
from ..browser.tools import is_home_like, normalize_host, normalize_url, youtube_results_url
from ..types import (
    ActionPlan,
    ChatBrowsingPlan,
    CreateSiteAction,
    OpenUrlAction,
    PageAction,
    PageActionsAction,
    PageSchema,
    SearchAction,
    SuggestSitesAction,
)


@dataclass(frozen=True, slots=True)
class KnownSite:
    label: str
    host: str
    url: str


KNOWN_SITES: tuple[KnownSite, ...] = (
    KnownSite("youtube", "youtube.com", "https://www.youtube.com"),
    KnownSite("facebook", "facebook.com", "https://www.facebook.com"),
    KnownSite("instagram", "instagram.com", "https://www.instagram.com"),
    KnownSite("tiktok", "tiktok.com", "https://www.tiktok.com"),
    KnownSite("twitter", "twitter.com", "https://twitter.com"),
    KnownSite("x", "x.com", "https://x.com"),
    KnownSite("reddit", "reddit.com", "https://www.reddit.com"),
    KnownSite("wikipedia", "wikipedia.org", "https://www.wikipedia.org"),
)

SEARCH_HOSTS = frozenset(
    {"duckduckgo.com", "www.duckduckgo.com", "google.com", "www.google.com", "bing.com", "www.bing.com"}
)

RELEVANCE_STOPWORDS = frozenset(
    {
        "about", "after", "again", "also", "another", "before", "being", "could",
        "first", "found", "from", "have", "here", "just", "like", "more", "most",
        "other", "over", "page", "people", "should", "their", "there", "these",
        "thing", "those", "this", "want", "when", "where", "which", "while", "would",
        "with", "your", "them", "then",
    }
)

YOUTUBE_SEARCH_SELECTOR = 'input#search, input[name="search_query"]'

_DOMAIN_PATTERN = re.compile(r"(?:[a-z0-9-]+\.)+[a-z]{2,}")
_EXPLICIT_ACTION_PATTERN = re.compile(
    r"\b(click|type|fill|scroll|select|press|submit|enter|choose|tick|check|on this page|this page|open menu)\b",
    re.IGNORECASE,
)
_QUERY_NOISE_PATTERN = re.compile(r"\b(go to|navigate to|on youtube|open|find|channel|youtube|the)\b")
_CHANNEL_HREF_PATTERN = re.compile(r"/@|/channel/|/c/|/user/")


def extract_domains(text: str) -> list[str]:
    matches = _DOMAIN_PATTERN.findall(text.lower())
    return list(dict.fromkeys(matches))


def direct_navigation_target(text: str) -> str:
    """Known site or bare domain named in ``text``; empty string when none."""

    lower = text.lower()
    for site in KNOWN_SITES:
        if re.search(rf"\b{re.escape(site.label)}\b", lower) or site.host in lower:
            return site.url
    domains = extract_domains(lower)
    if domains:
        return f"https://{domains[0]}"
    return ""


def site_domain(url: str) -> str:
    host = normalize_host(url)
    return host[4:] if host.startswith("www.") else host


def is_on_domain(url: str, domain: str) -> bool:
    """Whether ``url`` is served by ``domain`` or one of its subdomains."""

    host = normalize_host(url)
    return bool(domain and host) and (host == domain or host.endswith(f".{domain}"))


def extract_search_query(text: str) -> str:
    cleaned = _QUERY_NOISE_PATTERN.sub(" ", text.lower())
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    return cleaned or text.strip()


def _youtube_path(url: str) -> str | None:
    parsed = urlparse(url)
    if "youtube.com" not in (parsed.hostname or ""):
        return None
    return parsed.path


def is_youtube_home(url: str) -> bool:
    return _youtube_path(url) in {"/", "/feed/"}


def is_youtube_results(url: str) -> bool:
    return _youtube_path(url) == "/results"


def is_explicit_action_request(text: str) -> bool:
    return bool(_EXPLICIT_ACTION_PATTERN.search(text))


def is_domain_relevant(text: str, url: str) -> bool:
    """Whether the page at ``url`` plausibly serves the goal described by ``text``."""

    if not url or url.startswith(("data:", "about:", "file:")):
        return False
    host = normalize_host(url)
    if not host:
        return False
    if host in SEARCH_HOSTS:
        return True

    lower = text.lower()
    domains = extract_domains(lower)
    if domains:
        return any(domain in host or host in domain for domain in domains)

    tokens = [token for token in re.split(r"[^a-z0-9]+", lower) if token]
    return any(len(token) >= 4 and token not in RELEVANCE_STOPWORDS and token in host for token in tokens)


ResolutionKind = Literal["navigate", "run_plan", "plan_page_actions", "announce", "create"]


@dataclass(slots=True)
class Resolution:
    kind: ResolutionKind
    source: str
    url: str | None = None
    in_new_tab: bool = False
    plan: ActionPlan | None = None
    message: str | None = None
    summary: str | None = None
    fallback_url: str | None = None
    fallback_message: str | None = None
    request: str | None = None
    ends_step: bool = False


@dataclass(slots=True)
class ResolutionContext:
    goal_text: str
    user_message: str
    page_url: str
    plan: ChatBrowsingPlan
    schema: PageSchema | None = None
    explicit_action_request: bool = False
    step_hint: str = ""
    youtube_search_done: bool = False
    attempted: bool = False
    navigated: bool = False
    handled_page_actions: bool = False
    empty_page_action_plan: bool = False

    @property
    def intent_text(self) -> str:
        return f"{self.goal_text} {self.user_message}"

    @property
    def home_like(self) -> bool:
        return is_home_like(self.page_url)

    @property
    def youtube_results(self) -> bool:
        return is_youtube_results(self.page_url)

    @property
    def domain_relevant(self) -> bool:
        return self.youtube_results or is_domain_relevant(self.intent_text, self.page_url)

    @property
    def prefer_page_actions(self) -> bool:
        return self.schema is not None and (self.explicit_action_request or self.domain_relevant)

    @property
    def may_run_page_actions(self) -> bool:
        return not self.home_like and (self.explicit_action_request or self.domain_relevant)


Resolver = Callable[[ResolutionContext], Resolution | None]


def resolve_direct_navigation(ctx: ResolutionContext) -> Resolution | None:
    target = direct_navigation_target(ctx.intent_text)
    if not target:
        return None
    if is_on_domain(ctx.page_url, site_domain(target)):
        return None
    return Resolution(
        kind="navigate",
        source="direct_navigation",
        url=target,
        message=f"Navigating to {target}",
        summary=f"Navigated to {target}.",
        ends_step=True,
    )


def resolve_youtube_search(ctx: ResolutionContext) -> Resolution | None:
    if ctx.youtube_search_done or ctx.explicit_action_request or ctx.youtube_results:
        return None
    if "youtube.com" not in normalize_host(ctx.page_url):
        return None
    if not (ctx.home_like or is_youtube_home(ctx.page_url)):
        return None
    query = extract_search_query(ctx.goal_text or ctx.user_message)
    if not query:
        return None
    plan = ActionPlan(
        actions=[
            PageAction(type="focus", selector=YOUTUBE_SEARCH_SELECTOR),
            PageAction(type="type", selector=YOUTUBE_SEARCH_SELECTOR, text=query),
            PageAction(type="press", selector=YOUTUBE_SEARCH_SELECTOR, key="Enter"),
        ],
        notes="Search YouTube using the top search box.",
    )
    return Resolution(
        kind="run_plan",
        source="youtube_search",
        plan=plan,
        message=f'Searching YouTube for "{query}".',
        summary=f"Searched YouTube for {query}.",
        fallback_url=youtube_results_url(query),
        fallback_message=f'Opening YouTube results for "{query}".',
        ends_step=True,
    )


def resolve_preferred_page_actions(ctx: ResolutionContext) -> Resolution | None:
    if not ctx.prefer_page_actions or not ctx.may_run_page_actions:
        return None
    for action in ctx.plan.actions:
        if isinstance(action, PageActionsAction) and action.plan.actions:
            return Resolution(kind="run_plan", source="preferred_page_actions", plan=action.plan)
    return None


def resolve_plan_action(ctx: ResolutionContext) -> Resolution | None:
    """First planner action that applies when the engine is not biased toward the current page."""

    for action in ctx.plan.actions:
        if isinstance(action, OpenUrlAction):
            if ctx.prefer_page_actions:
                continue
            target = normalize_url(action.url)
            if not target:
                continue
            return Resolution(
                kind="navigate",
                source="plan_action",
                url=target,
                in_new_tab=action.in_new_tab,
                message=f"Navigating to {target}",
            )
        if isinstance(action, SearchAction):
            if ctx.prefer_page_actions:
                continue
            target = normalize_url(action.query)
            if not target:
                continue
            return Resolution(
                kind="navigate",
                source="plan_action",
                url=target,
                message=f"Searching for: {action.query}",
            )
        if isinstance(action, PageActionsAction):
            if ctx.prefer_page_actions or not ctx.may_run_page_actions:
                continue
            return Resolution(kind="run_plan", source="plan_action", plan=action.plan)
        if isinstance(action, CreateSiteAction):
            prompt = action.prompt.strip()
            if not prompt:
                continue
            kind_label = action.creation_type or "webpage"
            return Resolution(
                kind="create",
                source="plan_action",
                message=f"Here is a brief for a new {kind_label} you could create:\n{prompt}",
            )
    return None


def resolve_site_suggestions(ctx: ResolutionContext) -> Resolution | None:
    for action in ctx.plan.actions:
        if isinstance(action, SuggestSitesAction):
            lines = "\n".join(f"- {site}" for site in action.suggestions[:8])
            if lines:
                return Resolution(
                    kind="announce",
                    source="site_suggestions",
                    message=f"Here are some sites you might want:\n{lines}",
                )
    return None


def resolve_page_action_planning(ctx: ResolutionContext) -> Resolution | None:
    if ctx.attempted or ctx.navigated or ctx.handled_page_actions:
        return None
    if not ctx.prefer_page_actions or ctx.schema is None:
        return None
    hint = ctx.step_hint or ctx.goal_text
    request = (
        f"Goal: {ctx.goal_text}\nCurrent step: {hint}\nUser request: {ctx.user_message}\n"
        "On this page, identify the exact clicks or inputs needed to advance the goal."
    )
    return Resolution(kind="plan_page_actions", source="page_action_planning", request=request)


def resolve_youtube_channel_link(ctx: ResolutionContext) -> Resolution | None:
    if ctx.attempted or ctx.navigated or not ctx.empty_page_action_plan:
        return None
    if not ctx.youtube_results or ctx.schema is None:
        return None
    query_key = re.sub(r"[^a-z0-9]", "", extract_search_query(ctx.goal_text or ctx.user_message).lower())
    if not query_key:
        return None
    for link in ctx.schema.links:
        if not link.href or not _CHANNEL_HREF_PATTERN.search(link.href) or not link.selector:
            continue
        label = re.sub(r"[^a-z0-9]", "", " ".join(filter(None, [link.text, link.aria_label, link.name])).lower())
        if query_key in label:
            return Resolution(
                kind="run_plan",
                source="youtube_channel_link",
                plan=ActionPlan(
                    actions=[PageAction(type="click", selector=link.selector)],
                    notes="Click the channel result from YouTube search.",
                ),
            )
    return None


def resolve_deferred_navigation(ctx: ResolutionContext) -> Resolution | None:
    if ctx.attempted or ctx.navigated or not ctx.prefer_page_actions:
        return None
    deferred = next((action for action in ctx.plan.actions if isinstance(action, (OpenUrlAction, SearchAction))), None)
    if not isinstance(deferred, OpenUrlAction) or not page_contains_url(ctx.schema, deferred.url):
        return None
    target = normalize_url(deferred.url)
    return Resolution(
        kind="navigate",
        source="deferred_navigation",
        url=target,
        in_new_tab=deferred.in_new_tab,
        message=f"Navigating to {target}",
    )


def resolve_fallback_search(ctx: ResolutionContext) -> Resolution | None:
    if ctx.attempted or ctx.navigated or ctx.explicit_action_request or ctx.domain_relevant:
        return None
    query = ctx.goal_text or ctx.user_message
    target = normalize_url(query)
    if not target:
        return None
    return Resolution(kind="navigate", source="fallback_search", url=target, message=f"Searching for: {query}")


RESOLVERS: tuple[Resolver, ...] = (
    resolve_direct_navigation,
    resolve_youtube_search,
    resolve_preferred_page_actions,
    resolve_plan_action,
    resolve_site_suggestions,
    resolve_page_action_planning,
    resolve_youtube_channel_link,
    resolve_deferred_navigation,
    resolve_fallback_search,
)

# Consulted even when the planner proposes no action at all.
SHORTCUT_RESOLVERS: tuple[Resolver, ...] = (resolve_direct_navigation, resolve_youtube_search)
