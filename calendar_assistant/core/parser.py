"""
Calendar Assistant — Tool Schema & Argument Parsing.

The oracle sees the JSON schemas in TOOLS; whatever it sends back is
validated here into one of the typed argument models before any calendar
operation runs. Keep TOOLS and the models below in sync: the schema is what
the LLM is allowed to say, the models are what the operations accept.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import AfterValidator, BaseModel, Field, TypeAdapter, field_validator

from calendar_assistant.core.time_resolver import WEEKDAYS, parse_clock

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tool argument models (tagged by `tool`)
# ---------------------------------------------------------------------------


def _check_clock(value: str | None) -> str | None:
    if value is None or value == "":
        return None
    parse_clock(value)
    return value


# "HH:MM" (or "3pm"); rejected early so operations never see a bad clock
Clock = Annotated[Union[str, None], AfterValidator(_check_clock)]


class GetEventsArgs(BaseModel):
    """List events.

    JSON example:
    {"start_date": "friday", "keyword": "marketing this week"}
    """
    tool: Literal["get_events"] = "get_events"
    start_date: str | None = None
    end_date: str | None = None
    attendee: str | None = None
    keyword: str | None = None


class GetMeetingDetailsArgs(BaseModel):
    tool: Literal["get_meeting_details"] = "get_meeting_details"
    date: str
    summary: str | None = None
    time: Clock = None


class CreateMeetingArgs(BaseModel):
    """Create an event.

    JSON example:
    {
        "summary": "Design review",
        "date": "2025-06-10",
        "start_time": "14:00",
        "end_time": "15:00",
        "attendees": ["jane@example.com"],
        "recurrence": "Thursday"
    }
    """
    tool: Literal["create_meeting"] = "create_meeting"
    summary: str
    date: str
    start_time: Annotated[str, AfterValidator(_check_clock)]
    end_time: Clock = None
    duration_minutes: int | None = Field(default=None, gt=0)
    attendees: list[str] = []
    location: str | None = None
    description: str | None = None
    recurrence: str | None = None   # weekday name → weekly RRULE

    @field_validator("recurrence")
    @classmethod
    def recurrence_is_weekday(cls, v: str | None) -> str | None:
        if not v:
            return None
        day = v.strip().lower().removesuffix("s")
        if day not in WEEKDAYS:
            raise ValueError(f"Invalid day: {v}")
        return day


class MeetingUpdates(BaseModel):
    summary: str | None = None
    date: str | None = None
    start_time: Clock = None
    end_time: Clock = None
    description: str | None = None
    location: str | None = None

    def is_empty(self) -> bool:
        return not any(self.model_dump().values())


class ModifyMeetingArgs(BaseModel):
    tool: Literal["modify_meeting"] = "modify_meeting"
    date: str
    summary: str | None = None
    time: Clock = None
    updates: MeetingUpdates = MeetingUpdates()


class FindOpenSlotsArgs(BaseModel):
    tool: Literal["find_open_slots"] = "find_open_slots"
    date: str
    duration_minutes: int = Field(default=30, gt=0)


class DeleteMeetingArgs(BaseModel):
    tool: Literal["delete_meeting"] = "delete_meeting"
    date: str
    summary: str | None = None
    time: Clock = None


ToolCall = Annotated[
    Union[
        GetEventsArgs,
        GetMeetingDetailsArgs,
        CreateMeetingArgs,
        ModifyMeetingArgs,
        FindOpenSlotsArgs,
        DeleteMeetingArgs,
    ],
    Field(discriminator="tool"),
]

_TOOL_CALL_ADAPTER: TypeAdapter = TypeAdapter(ToolCall)


class SetTimezoneArgs(BaseModel):
    timezone: str
    confidence: Literal["high", "medium", "low"] = "high"


def parse_tool_call(name: str, arguments: dict) -> ToolCall:
    """Validate raw oracle arguments into the matching argument model.

    Raises pydantic.ValidationError for unknown tools or bad arguments.
    """
    payload = {k: v for k, v in arguments.items() if v is not None}
    payload["tool"] = name
    call = _TOOL_CALL_ADAPTER.validate_python(payload)
    logger.debug("Parsed tool call %s: %s", name, call)
    return call


# ---------------------------------------------------------------------------
# JSON schemas sent to the oracle
# ---------------------------------------------------------------------------

_RELATIVE_DAY_HINT = "can use relative terms like 'today', 'tomorrow', 'friday', 'next monday'"

TOOLS: list[dict] = [
    {
        "name": "get_events",
        "description": "Get calendar events based on filters like dates, attendees or topic.",
        "parameters": {
            "type": "object",
            "properties": {
                "start_date": {
                    "type": "string",
                    "description": f"Start date - {_RELATIVE_DAY_HINT}",
                },
                "end_date": {
                    "type": "string",
                    "description": f"End date - {_RELATIVE_DAY_HINT}",
                },
                "attendee": {
                    "type": "string",
                    "description": "Name or email of the person in the meeting",
                },
                "keyword": {
                    "type": "string",
                    "description": (
                        "Keyword to filter meetings. Use 'this week' or 'next week' for "
                        "a whole week, 'morning/afternoon/evening' for time of day, "
                        "'overlap' to flag clashing meetings, plus any topic words"
                    ),
                },
            },
            "required": [],
        },
    },
    {
        "name": "get_meeting_details",
        "description": "Get detailed information about a specific meeting.",
        "parameters": {
            "type": "object",
            "properties": {
                "date": {
                    "type": "string",
                    "description": f"Date of the meeting - {_RELATIVE_DAY_HINT}, or YYYY-MM-DD",
                },
                "summary": {
                    "type": "string",
                    "description": "Title/summary of the meeting to find",
                },
                "time": {
                    "type": "string",
                    "description": "Approximate time of the meeting (HH:MM)",
                },
            },
            "required": ["date"],
        },
    },
    {
        "name": "create_meeting",
        "description": "Create a new calendar event/meeting.",
        "parameters": {
            "type": "object",
            "properties": {
                "summary": {
                    "type": "string",
                    "description": "Title/topic of the meeting",
                },
                "date": {
                    "type": "string",
                    "description": f"Date of the meeting - {_RELATIVE_DAY_HINT}, or YYYY-MM-DD",
                },
                "start_time": {
                    "type": "string",
                    "description": "Start time in HH:MM format (24-hour)",
                },
                "end_time": {
                    "type": "string",
                    "description": "End time in HH:MM format (24-hour)",
                },
                "duration_minutes": {
                    "type": "integer",
                    "description": "Length of the meeting in minutes, when no end time is given",
                },
                "recurrence": {
                    "type": "string",
                    "description": (
                        "Day of the week for recurring meetings "
                        "(e.g., 'Thursday' for weekly on Thursdays)"
                    ),
                },
                "description": {
                    "type": "string",
                    "description": "Optional meeting description or agenda",
                },
                "attendees": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Optional list of attendee email addresses",
                },
                "location": {
                    "type": "string",
                    "description": "Optional meeting location or video conference link",
                },
            },
            "required": ["summary", "date", "start_time"],
        },
    },
    {
        "name": "modify_meeting",
        "description": "Modify an existing calendar event/meeting.",
        "parameters": {
            "type": "object",
            "properties": {
                "date": {
                    "type": "string",
                    "description": f"Current date of the meeting - {_RELATIVE_DAY_HINT}",
                },
                "summary": {
                    "type": "string",
                    "description": "Current title/summary of the meeting to find",
                },
                "time": {
                    "type": "string",
                    "description": "Approximate current time of the meeting (HH:MM)",
                },
                "updates": {
                    "type": "object",
                    "description": "New values to update the meeting with",
                    "properties": {
                        "summary": {"type": "string", "description": "New title for the meeting"},
                        "date": {
                            "type": "string",
                            "description": f"New date for the meeting - {_RELATIVE_DAY_HINT}",
                        },
                        "start_time": {
                            "type": "string",
                            "description": "New start time in HH:MM format (24-hour)",
                        },
                        "end_time": {
                            "type": "string",
                            "description": "New end time in HH:MM format (24-hour)",
                        },
                        "description": {"type": "string", "description": "New meeting description"},
                        "location": {"type": "string", "description": "New meeting location"},
                    },
                },
            },
            "required": ["date"],
        },
    },
    {
        "name": "find_open_slots",
        "description": "Find free time slots during the workday on a given date.",
        "parameters": {
            "type": "object",
            "properties": {
                "date": {
                    "type": "string",
                    "description": f"Day to search - {_RELATIVE_DAY_HINT}, or YYYY-MM-DD",
                },
                "duration_minutes": {
                    "type": "integer",
                    "description": "Minimum length of a free slot in minutes (default 30)",
                },
            },
            "required": ["date"],
        },
    },
    {
        "name": "delete_meeting",
        "description": "Delete (cancel) an existing meeting.",
        "parameters": {
            "type": "object",
            "properties": {
                "date": {
                    "type": "string",
                    "description": f"Date of the meeting - {_RELATIVE_DAY_HINT}, or YYYY-MM-DD",
                },
                "summary": {
                    "type": "string",
                    "description": "Title/summary of the meeting to delete",
                },
                "time": {
                    "type": "string",
                    "description": "Approximate time of the meeting (HH:MM)",
                },
            },
            "required": ["date"],
        },
    },
]

SET_TIMEZONE_TOOL: dict = {
    "name": "set_timezone",
    "description": "Record the user's IANA timezone based on where they say they are.",
    "parameters": {
        "type": "object",
        "properties": {
            "timezone": {
                "type": "string",
                "description": "IANA timezone identifier, e.g. 'Europe/Amsterdam' or 'America/New_York'",
            },
            "confidence": {
                "type": "string",
                "enum": ["high", "medium", "low"],
                "description": "How sure you are that the timezone matches the user's location",
            },
        },
        "required": ["timezone", "confidence"],
    },
}


# ---------------------------------------------------------------------------
# System prompts
# ---------------------------------------------------------------------------

_SYSTEM_PROMPT = """\
You are a calendar assistant that helps manage meetings.

Today is {today} ({weekday}). The user's timezone is {timezone}; all times
the user mentions are in that timezone.

- For calendar queries:
  - When the user asks about meetings with a topic (e.g. "marketing meetings"), include the topic in the keyword
  - When the user asks about "this week" or "next week", include it in the keyword
  - For "meetings about X this week", pass both the topic and "this week" in the keyword
  - Examples:
    - "do i have any meetings about marketing this week" -> keyword="marketing this week"
    - "what marketing meetings do i have" -> keyword="marketing"
    - "what meetings do i have this week" -> keyword="this week"
- For new meetings:
  - Ask for the duration if neither an end time nor a duration is given
  - Accept the user's preferred time if given
  - When scheduling relative to other meetings, first find the referenced meeting, then schedule around it
  - When attendees are mentioned by name, ask for their email address before creating the meeting.
    Format: "Could you provide Frank's email address to send the invitation?"
- For deleting or changing meetings, if the user picks one of several listed candidates, call the tool
  again with the exact title and time of that candidate
- Keep responses clear and concise
- Don't question the user's choices once they're clear
- Don't suggest changes to confirmed times/durations
"""

_TIMEZONE_PROMPT = """\
The user is telling you where they are so their calendar can use the right timezone.
Call set_timezone with the IANA timezone identifier for the location they describe.
Use confidence "low" if the message does not clearly identify a place.
"""


def build_system_prompt(timezone: str, now: datetime) -> str:
    return _SYSTEM_PROMPT.format(
        today=now.date().isoformat(),
        weekday=now.strftime("%A"),
        timezone=timezone,
    )


def build_timezone_prompt() -> str:
    return _TIMEZONE_PROMPT
