"""
Composite lesson report text.

Older screens store a report as one text field on the booking, with the three
sections under fixed markers:

    【単元】
    <unit>

    【伝言事項】
    <message>

    【来週までの目標(課題)】
    <goal>

Even older rows have no markers at all: one section per line, in the order
unit, message, goal.
"""

import re
from dataclasses import dataclass
from typing import Optional

UNIT_MARKER = "【単元】"
MESSAGE_MARKER = "【伝言事項】"
GOAL_MARKER = "【来週までの目標(課題)】"

_UNIT_RE = re.compile(r"【単元】[ \t]*\n?([\s\S]*?)(?=\n\n【|$)")
_MESSAGE_RE = re.compile(r"【伝言事項】[ \t]*\n?([\s\S]*?)(?=\n\n【|$)")
_GOAL_RE = re.compile(r"【来週までの目標\(課題\)】[ \t]*\n?([\s\S]*)$")


@dataclass(frozen=True)
class ReportSections:
    unit: str = ""
    message: str = ""
    goal: str = ""

    def is_empty(self) -> bool:
        return not (self.unit or self.message or self.goal)


def compose(sections: ReportSections) -> str:
    return (
        f"{UNIT_MARKER}\n{sections.unit}\n\n"
        f"{MESSAGE_MARKER}\n{sections.message}\n\n"
        f"{GOAL_MARKER}\n{sections.goal}"
    )


def _group(pattern: re.Pattern, content: str) -> str:
    match = pattern.search(content)
    return match.group(1).strip() if match else ""


def parse(content: Optional[str]) -> ReportSections:
    if not content:
        return ReportSections()
    if UNIT_MARKER in content or MESSAGE_MARKER in content or GOAL_MARKER in content:
        return ReportSections(
            unit=_group(_UNIT_RE, content),
            message=_group(_MESSAGE_RE, content),
            goal=_group(_GOAL_RE, content),
        )
    lines = content.split("\n")
    lines += [""] * (3 - len(lines))
    return ReportSections(unit=lines[0].strip(), message=lines[1].strip(), goal=lines[2].strip())


def is_completed(report_status: Optional[str]) -> bool:
    """Legacy rows store 'completed:<timestamp>'."""
    return bool(report_status) and report_status.split(":", 1)[0] == "completed"
