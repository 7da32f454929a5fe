from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

Platform = Literal["twitter", "instagram", "everytime", "youtube", "messenger"]

DEFAULT_PLATFORM: Platform = "twitter"


@dataclass(frozen=True)
class Dialect:
    """
    Field-presence rules of one simulated platform.

    Parsing always reads every known field; the dialect decides which of them
    survive into the platform's post variant and how they are written back.
    """

    platform: Platform
    uses_handle: bool = True
    uses_display_name: bool = True
    uses_title: bool = False
    uses_participants: bool = False
    uses_quotes: bool = False
    uses_video: bool = False
    share_unit: str = "R"
    secondary_unit: str = "Q"


DIALECTS: dict[str, Dialect] = {
    "twitter": Dialect("twitter", uses_quotes=True),
    "instagram": Dialect("instagram"),
    "everytime": Dialect(
        "everytime",
        uses_handle=False,
        uses_display_name=False,
        uses_title=True,
        share_unit="S",
        secondary_unit="C",
    ),
    "youtube": Dialect(
        "youtube",
        uses_display_name=False,
        uses_video=True,
    ),
    "messenger": Dialect("messenger", uses_participants=True),
}


def resolve_platform(value: object, default: str = DEFAULT_PLATFORM) -> Platform:
    name = value.strip().casefold() if isinstance(value, str) else ""
    if name in DIALECTS:
        return DIALECTS[name].platform
    if default in DIALECTS:
        return DIALECTS[default].platform
    return DEFAULT_PLATFORM


def get_dialect(platform: str | None) -> Dialect:
    return DIALECTS[resolve_platform(platform)]
