from __future__ import annotations

from copilot.core.resolvers import (
    RESOLVERS,
    ResolutionContext,
    direct_navigation_target,
    extract_search_query,
    is_domain_relevant,
    is_explicit_action_request,
    is_on_domain,
    resolve_deferred_navigation,
    resolve_direct_navigation,
    resolve_fallback_search,
    resolve_page_action_planning,
    resolve_plan_action,
    resolve_preferred_page_actions,
    resolve_site_suggestions,
    resolve_youtube_channel_link,
    resolve_youtube_search,
    site_domain,
)
from copilot.types import (
    ActionPlan,
    ChatBrowsingPlan,
    CreateSiteAction,
    ElementSummary,
    OpenUrlAction,
    PageAction,
    PageActionsAction,
    PageSchema,
    SearchAction,
    SuggestSitesAction,
)

CLICK_PLAN = ActionPlan(actions=[PageAction(type="click", selector="a.result")])


def make_ctx(goal: str, url: str, *actions, schema: PageSchema | None = None, **flags) -> ResolutionContext:
    return ResolutionContext(
        goal_text=goal,
        user_message=goal,
        page_url=url,
        plan=ChatBrowsingPlan(actions=list(actions)),
        schema=schema,
        **flags,
    )


def first_resolution(ctx: ResolutionContext):
    for resolver in RESOLVERS:
        resolution = resolver(ctx)
        if resolution is not None:
            return resolution
    return None


def test_known_site_labels_match_whole_words() -> None:
    assert direct_navigation_target("open wikipedia") == "https://www.wikipedia.org"
    assert direct_navigation_target("post this on X") == "https://x.com"
    assert direct_navigation_target("fix my inbox") == ""
    assert direct_navigation_target("read docs.python.org today") == "https://docs.python.org"


def test_direct_navigation_skips_when_already_there() -> None:
    ctx = make_ctx("open wikipedia", "https://www.wikipedia.org/")
    assert resolve_direct_navigation(ctx) is None
    resolution = resolve_direct_navigation(make_ctx("open wikipedia", "about:blank"))
    assert resolution is not None
    assert resolution.url == "https://www.wikipedia.org"
    assert resolution.ends_step


def test_direct_navigation_skips_subdomains_of_the_target() -> None:
    article = "https://en.wikipedia.org/wiki/Alan_Turing"
    assert resolve_direct_navigation(make_ctx("read the wikipedia article on alan turing", article)) is None
    assert resolve_direct_navigation(make_ctx("find lofi music on youtube", "https://m.youtube.com/")) is None
    assert resolve_direct_navigation(make_ctx("read docs.python.org today", "https://docs.python.org/3/")) is None
    assert resolve_direct_navigation(make_ctx("post this on X", "https://box.com/")) is not None


def test_domain_helpers_compare_hosts() -> None:
    assert site_domain("https://www.wikipedia.org") == "wikipedia.org"
    assert site_domain("https://docs.python.org") == "docs.python.org"
    assert is_on_domain("https://en.wikipedia.org/wiki/Python", "wikipedia.org")
    assert not is_on_domain("https://notwikipedia.org/", "wikipedia.org")
    assert not is_on_domain("about:blank", "wikipedia.org")


def test_youtube_home_synthesises_search_plan() -> None:
    ctx = make_ctx("find lofi music on youtube", "https://www.youtube.com/", schema=PageSchema())
    resolution = resolve_youtube_search(ctx)
    assert resolution is not None
    assert [action.type for action in resolution.plan.actions] == ["focus", "type", "press"]
    assert resolution.plan.actions[1].text == "lofi music"
    assert resolution.fallback_url == "https://www.youtube.com/results?search_query=lofi+music"

    assert resolve_youtube_search(make_ctx("find lofi", "https://www.youtube.com/", youtube_search_done=True)) is None
    assert resolve_youtube_search(make_ctx("find lofi", "https://www.youtube.com/results?search_query=x")) is None


def test_relevant_page_prefers_page_actions_over_navigation() -> None:
    ctx = make_ctx(
        "compare python asyncio tutorials",
        "https://docs.python.org/3/",
        OpenUrlAction(url="https://realpython.com"),
        PageActionsAction(plan=CLICK_PLAN),
        schema=PageSchema(),
    )
    assert ctx.domain_relevant
    resolution = first_resolution(ctx)
    assert resolution is not None
    assert resolution.source == "preferred_page_actions"
    assert resolution.plan == CLICK_PLAN


def test_irrelevant_page_navigates_instead_of_clicking() -> None:
    ctx = make_ctx(
        "compare python asyncio tutorials",
        "https://news.ycombinator.com/",
        PageActionsAction(plan=CLICK_PLAN),
        SearchAction(query="asyncio tutorial"),
        schema=PageSchema(),
    )
    assert resolve_preferred_page_actions(ctx) is None
    resolution = resolve_plan_action(ctx)
    assert resolution is not None
    assert resolution.kind == "navigate"
    assert resolution.url == "https://duckduckgo.com/?q=asyncio%20tutorial"


def test_create_site_and_suggestions() -> None:
    ctx = make_ctx("make me a landing page", "about:blank", CreateSiteAction(prompt="A bakery page", creation_type="webpage"))
    resolution = resolve_plan_action(ctx)
    assert resolution is not None and resolution.kind == "create"
    assert "A bakery page" in resolution.message

    suggestions = resolve_site_suggestions(
        make_ctx("where to shop", "about:blank", SuggestSitesAction(suggestions=["amazon.com", "ebay.com"]))
    )
    assert suggestions is not None
    assert suggestions.message.endswith("- ebay.com")


def test_page_action_planning_only_when_nothing_happened() -> None:
    ctx = make_ctx("click the login button", "https://example.com/", schema=PageSchema(), explicit_action_request=True)
    resolution = resolve_page_action_planning(ctx)
    assert resolution is not None
    assert "click the login button" in resolution.request
    ctx.attempted = True
    assert resolve_page_action_planning(ctx) is None


def test_youtube_channel_link_after_empty_page_plan() -> None:
    schema = PageSchema(
        links=[
            ElementSummary(tag="a", text="Some video", href="/watch?v=1", selector="a.video"),
            ElementSummary(tag="a", text="Lofi Girl", href="/@LofiGirl", selector="a.channel"),
        ]
    )
    ctx = make_ctx(
        "lofi girl",
        "https://www.youtube.com/results?search_query=lofi+girl",
        schema=schema,
        empty_page_action_plan=True,
    )
    resolution = resolve_youtube_channel_link(ctx)
    assert resolution is not None
    assert resolution.plan.actions[0].selector == "a.channel"


def test_deferred_navigation_requires_link_on_page() -> None:
    schema = PageSchema(links=[ElementSummary(tag="a", href="https://docs.python.org/3/library/", selector="a.lib")])
    ctx = make_ctx(
        "python library reference",
        "https://docs.python.org/3/",
        OpenUrlAction(url="https://docs.python.org/3/library/"),
        schema=schema,
    )
    resolution = resolve_deferred_navigation(ctx)
    assert resolution is not None
    assert resolution.url == "https://docs.python.org/3/library/"

    other = make_ctx(
        "python library reference",
        "https://docs.python.org/3/",
        OpenUrlAction(url="https://pypi.org"),
        schema=schema,
    )
    assert resolve_deferred_navigation(other) is None


def test_fallback_search_on_irrelevant_page() -> None:
    ctx = make_ctx("cheap flights to lisbon", "about:blank")
    resolution = first_resolution(ctx)
    assert resolution is not None
    assert resolution.source == "fallback_search"
    assert resolution.url.startswith("https://duckduckgo.com/?q=cheap%20flights")
    assert resolve_fallback_search(make_ctx("click next", "about:blank", explicit_action_request=True)) is None


def test_helpers() -> None:
    assert is_explicit_action_request("please click the blue button")
    assert is_explicit_action_request("what's on this page")
    assert not is_explicit_action_request("find cheap flights")
    assert extract_search_query("Go to YouTube and find the Lofi Girl channel") == "and lofi girl"
    assert is_domain_relevant("anything", "https://duckduckgo.com/?q=x")
    assert not is_domain_relevant("anything", "about:blank")
    assert is_domain_relevant("check my github notifications", "https://github.com/")


def test_plan_action_skips_actions_without_a_target() -> None:
    ctx = make_ctx(
        "compare python asyncio tutorials",
        "about:blank",
        OpenUrlAction(url="   "),
        SearchAction(query=""),
        SearchAction(query="asyncio tutorial"),
    )
    resolution = resolve_plan_action(ctx)
    assert resolution is not None
    assert resolution.url == "https://duckduckgo.com/?q=asyncio%20tutorial"
