from __future__ import annotations

from .agent import CancellationToken, CopilotAgent
from .memory import VisitMemory
from .planner import Planner
from .session import CopilotSession
from .skills import SkillMemory, SkillRefiner

__all__ = [
	"CopilotAgent",
	"CopilotSession",
	"CancellationToken",
	"Planner",
	"SkillMemory",
	"SkillRefiner",
	"VisitMemory",
]
