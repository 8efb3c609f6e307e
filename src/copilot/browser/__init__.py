from __future__ import annotations

from .executor import ActionPlanExecutor, action_plan_may_navigate
from .schema import SchemaExtractor
from .surface import NAVIGATION_EVENTS, PageSurface, SurfaceHost
from .tools import is_http_url, normalize_host, normalize_url, search_url

__all__ = [
	"ActionPlanExecutor",
	"action_plan_may_navigate",
	"SchemaExtractor",
	"PageSurface",
	"SurfaceHost",
	"NAVIGATION_EVENTS",
	"normalize_url",
	"normalize_host",
	"search_url",
	"is_http_url",
]
