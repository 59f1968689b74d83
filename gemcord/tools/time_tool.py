"""Clock tool."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from gemcord.tools.base import Tool


class GetCurrentTimeTool(Tool):
    """Current time in UTC, optionally also in an IANA time zone."""

    name = "get_current_time"
    description = (
        "Get the current date and time in ISO-8601 format. Pass an IANA time "
        "zone such as 'Europe/Berlin' to also get the local time there."
    )
    parameters_schema: dict[str, Any] = {
        "type": "object",
        "properties": {
            "timezone": {"type": "string", "description": "IANA time zone name (optional)."},
        },
    }

    async def run(self, **kwargs: Any) -> dict[str, str]:
        now = datetime.now(timezone.utc)
        result = {"utc_time": now.isoformat()}
        zone_name = str(kwargs.get("timezone") or "").strip()
        if zone_name:
            try:
                zone = ZoneInfo(zone_name)
            except (ZoneInfoNotFoundError, ValueError) as exc:
                raise ValueError(f"Unknown time zone: {zone_name!r}") from exc
            result["timezone"] = zone_name
            result["local_time"] = now.astimezone(zone).isoformat()
        return result

    def summarize(self, result: Any) -> str:
        return f"Current time: {result.get('local_time') or result['utc_time']}"
