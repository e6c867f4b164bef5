"""Local time tool configuration for the AI agent."""

import logging
from datetime import UTC, datetime
from typing import Any, cast
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field

from src.agent.models import ToolDef

logger = logging.getLogger(__name__)


class LocalTimeArgs(BaseModel):
    """Arguments for getting the local time."""

    timezone: str = Field(
        ...,
        min_length=1,
        description="IANA timezone for the location, e.g. 'Europe/London' or 'Asia/Tokyo'",
    )


def _get_local_time_handler(args: BaseModel) -> dict[str, Any]:
    """Handle a local time lookup.

    :param args: LocalTimeArgs instance.
    :returns: Current local time in the timezone.
    :raises ValueError: If the timezone is unknown.
    """
    time_args = cast(LocalTimeArgs, args)
    try:
        zone = ZoneInfo(time_args.timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {time_args.timezone}") from e

    now = datetime.now(UTC).astimezone(zone)
    logger.debug(f"Local time resolved: timezone={time_args.timezone}")

    return {
        "timezone": time_args.timezone,
        "local_time": now.isoformat(timespec="seconds"),
        "display": now.strftime("%-I:%M %p, %A %d %B"),
    }


GET_LOCAL_TIME_TOOL = ToolDef(
    name="get_local_time",
    description="Get the current local time for a location, given its IANA timezone.",
    args_model=LocalTimeArgs,
    handler=_get_local_time_handler,
)


def get_local_time_tools() -> list[ToolDef]:
    """Get all local time tool definitions.

    :returns: List of ToolDef instances for time operations.
    """
    return [GET_LOCAL_TIME_TOOL]
