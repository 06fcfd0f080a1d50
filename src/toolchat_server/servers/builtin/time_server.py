"""Built-in time server: current time lookup and timezone conversion."""

import json
import logging
from datetime import datetime
from typing import Annotated, Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from mcp.server.fastmcp import FastMCP
from pydantic import Field

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "UTC"


def _zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Invalid timezone: {name}") from e


def _describe(dt: datetime, timezone_name: str) -> dict[str, Any]:
    return {
        "timezone": timezone_name,
        "datetime": dt.isoformat(timespec="seconds"),
        "is_dst": bool(dt.dst()),
    }


def _format_time_difference(hours: float) -> str:
    if hours.is_integer():
        return f"{hours:+.1f}h"
    return f"{hours:+.2f}".rstrip("0").rstrip(".") + "h"


def get_current_time(timezone_name: str, now: datetime | None = None) -> dict[str, Any]:
    """Current time in ``timezone_name``.

    Args:
        timezone_name: IANA timezone name
        now: Reference instant (aware), defaults to the current time

    Raises:
        ValueError: If the timezone is unknown
    """
    zone = _zone(timezone_name)
    current = (now or datetime.now(tz=zone)).astimezone(zone)
    return _describe(current, timezone_name)


def convert_time(
    source_timezone: str,
    time: str,
    target_timezone: str,
    today: datetime | None = None,
) -> dict[str, Any]:
    """Convert a wall-clock ``HH:MM`` time from one timezone to another.

    The date used is today's date in the source timezone.

    Raises:
        ValueError: On an invalid time format or unknown timezone
    """
    try:
        hours_str, minutes_str = time.split(":")
        hours, minutes = int(hours_str), int(minutes_str)
    except ValueError as e:
        raise ValueError("Invalid time format. Expected HH:MM [24-hour format]") from e
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        raise ValueError("Invalid time format. Expected HH:MM [24-hour format]")

    source_zone = _zone(source_timezone)
    target_zone = _zone(target_timezone)

    reference = (today or datetime.now(tz=source_zone)).astimezone(source_zone)
    source_dt = reference.replace(hour=hours, minute=minutes, second=0, microsecond=0)
    target_dt = source_dt.astimezone(target_zone)

    source_offset = source_dt.utcoffset()
    target_offset = target_dt.utcoffset()
    if source_offset is None or target_offset is None:
        raise ValueError("Timezone has no UTC offset")
    difference = (target_offset - source_offset).total_seconds() / 3600

    return {
        "source": _describe(source_dt, source_timezone),
        "target": _describe(target_dt, target_timezone),
        "time_difference": _format_time_difference(difference),
    }


def create_time_server() -> FastMCP:
    server = FastMCP("Toolchat Time Server")

    @server.tool(
        name="get_current_time",
        description="Get current time in a specific timezone",
    )
    def get_current_time_tool(
        timezone: Annotated[
            str,
            Field(
                description="IANA timezone name (e.g., 'America/New_York', 'Europe/London'). "
                f"Use '{DEFAULT_TIMEZONE}' if no timezone provided by the user."
            ),
        ] = DEFAULT_TIMEZONE,
    ) -> str:
        result = get_current_time(timezone or DEFAULT_TIMEZONE)
        return json.dumps(result, indent=2)

    @server.tool(
        name="convert_time",
        description="Convert time between timezones",
    )
    def convert_time_tool(
        source_timezone: Annotated[
            str,
            Field(description="Source IANA timezone name (e.g., 'America/New_York')"),
        ],
        time: Annotated[
            str, Field(description="Time to convert in 24-hour format (HH:MM)")
        ],
        target_timezone: Annotated[
            str,
            Field(description="Target IANA timezone name (e.g., 'Asia/Tokyo')"),
        ],
    ) -> str:
        result = convert_time(
            source_timezone or DEFAULT_TIMEZONE,
            time,
            target_timezone or DEFAULT_TIMEZONE,
        )
        return json.dumps(result, indent=2)

    logger.debug("Time server tools registered")
    return server
