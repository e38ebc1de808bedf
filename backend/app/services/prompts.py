"""Prompt builders for planning, task generation and the kanban assistant."""
from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from app.core.clock import now
from app.db.models.preferences import Preferences
from app.services.task_alignment import TaskSnapshot
from app.services.time_utils import is_outdoor_task
from app.services.weather import WeatherSnapshot

PRIORITY_LABELS = {"high": "CRITICAL", "medium": "IMPORTANT", "low": "NORMAL"}


@dataclass(frozen=True)
class TimeContext:
    current_time: str
    current_date: str
    hour: int
    time_of_day: str
    is_weekend: bool
    is_working_hours: bool
    is_business_day: bool

    @classmethod
    def from_datetime(cls, moment: datetime) -> "TimeContext":
        hour = moment.hour
        if hour < 6:
            time_of_day = "late night"
        elif hour < 12:
            time_of_day = "morning"
        elif hour < 17:
            time_of_day = "afternoon"
        elif hour < 21:
            time_of_day = "evening"
        else:
            time_of_day = "night"
        weekday = moment.weekday()
        return cls(
            current_time=moment.strftime("%H:%M"),
            current_date=f"{moment:%A}, {moment:%B} {moment.day}, {moment.year}",
            hour=hour,
            time_of_day=time_of_day,
            is_weekend=weekday >= 5,
            is_working_hours=9 <= hour < 17,
            is_business_day=weekday < 5,
        )

    @property
    def label(self) -> str:
        if self.is_weekend:
            return "Weekend"
        if self.is_working_hours:
            return "Working Hours"
        return "After Work Hours"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currentTime": self.current_time,
            "timeOfDay": self.time_of_day,
            "dayOfWeek": self.current_date,
            "isWeekend": self.is_weekend,
            "isWorkingHours": self.is_working_hours,
        }


def current_time_context() -> TimeContext:
    return TimeContext.from_datetime(now())


def _prefs_dict(prefs: Optional[Preferences]) -> Dict[str, Any]:
    if prefs is None:
        return {}
    return {
        "wake_time": prefs.wake_time,
        "sleep_time": prefs.sleep_time,
        "peak_focus": prefs.peak_focus,
        "city": prefs.city,
        "break_style": prefs.break_style,
        "break_interval_minutes": prefs.break_interval_minutes,
        "max_work_hours": prefs.max_work_hours,
        "commute_mode": prefs.commute_mode,
    }


def _custom_instructions(custom_prompts: Optional[Iterable[str]], closing: str) -> str:
    prompts = [p.strip() for p in custom_prompts or [] if isinstance(p, str) and p.strip()]
    if not prompts:
        return ""
    lines = "\n".join(f"{index}. {prompt}" for index, prompt in enumerate(prompts, start=1))
    return f"\nCUSTOM USER INSTRUCTIONS (CRITICAL - FOLLOW EXACTLY):\n{lines}\n\n{closing}"


def weather_guidance(weather: Optional[WeatherSnapshot]) -> str:
    if weather is None:
        return ""
    description = weather.description.lower()
    if "rain" in description or "storm" in description:
        return "INDOOR TASKS ONLY - Weather not suitable for outdoor activities."
    if "snow" in description or weather.temperature < 5:
        return "Cold weather - minimize outdoor exposure, focus on indoor productivity."
    if weather.temperature > 25:
        return "Hot weather - prefer morning/evening outdoor tasks, midday indoor tasks."
    return "Pleasant weather suitable for all types of tasks."


def build_plan_prompt(
    prefs: Optional[Preferences],
    tasks: Sequence[TaskSnapshot],
    weather: Optional[WeatherSnapshot],
    custom_prompts: Optional[Iterable[str]] = None,
    time_context: Optional[TimeContext] = None,
) -> str:
    if not tasks:
        raise ValueError("No tasks provided for planning")
    ctx = time_context or current_time_context()
    p = _prefs_dict(prefs)
    wake = p.get("wake_time") or "09:00"
    sleep = p.get("sleep_time") or "23:00"
    break_interval = p.get("break_interval_minutes") or 30

    weather_info = weather.summary if weather else "unknown weather conditions"
    lowered = weather_info.lower()
    if "rain" in lowered or "storm" in lowered:
        constraints = "CRITICAL: Reschedule outdoor tasks to indoor alternatives or postpone due to rain/storms."
    elif "snow" in lowered or "cold" in lowered:
        constraints = "WARNING: Minimize outdoor tasks, prioritize indoor activities."
    elif "hot" in lowered or "sunny" in lowered or "clear" in lowered:
        constraints = "OPTIMIZE: Schedule outdoor tasks during cooler hours (early morning/evening)."
    else:
        constraints = ""

    task_lines = "\n".join(
        f'"{t.title or "Untitled"}" [{t.duration_minutes or 30}min] '
        f"[{PRIORITY_LABELS.get(t.importance or 'medium', 'NORMAL')}] [Status: {t.status or 'todo'}] "
        f"[Time: {t.scheduled_time or 'FLEXIBLE'}] "
        f"[Weather-dependent: {'YES' if is_outdoor_task(t.title) else 'NO'}]"
        for t in tasks
    )
    custom = _custom_instructions(
        custom_prompts, "These instructions override default scheduling rules when conflicts arise."
    )

    return f"""You are an EXPERT SCHEDULE OPTIMIZER. Create a PRECISE, WEATHER-AWARE daily schedule.

CURRENT CONTEXT:
- Time: {ctx.current_time}
- Date: {ctx.current_date}
- Weather: {weather_info}
- Weather constraints: {constraints}

USER PROFILE:
- Wake time: {wake}
- Sleep time: {sleep}
- Peak focus: {p.get("peak_focus") or "morning"}
- Break style: {p.get("break_style") or "short"}
- Break interval: {break_interval} minutes
- Max work hours: {p.get("max_work_hours") or 8}
{custom}

TASKS TO SCHEDULE:
{task_lines}

SCHEDULING RULES (FOLLOW EXACTLY):
1. FIXED TIMES: Tasks with specific times are UNMOVABLE - schedule exactly as specified
2. WEATHER PRIORITY: Outdoor tasks MUST be weather-appropriate or rescheduled
3. PEAK FOCUS: High-priority tasks during the user's peak focus period
4. BREAK MANAGEMENT: Insert breaks every {break_interval} minutes
5. ENERGY OPTIMIZATION: Heavy tasks during high-energy periods, light tasks during low-energy
6. REALISTIC TIMING: Account for transition time between tasks
7. CUSTOM INSTRUCTIONS: Follow all user custom instructions exactly - they override default rules

RESPONSE FORMAT - EXACT JSON STRUCTURE:
{{
  "schedule": [
    {{
      "time": "HH:MM",
      "activity": "exact task or break name",
      "duration": "minutes_as_string",
      "type": "task|break|meal"
    }}
  ],
  "summary": "Brief summary of schedule optimization decisions"
}}

CRITICAL REQUIREMENTS:
- START at the user's wake time: {wake}
- END before sleep time: {sleep}
- RESPECT all fixed times exactly
- NO markdown, NO explanations outside JSON
- COMPLETE valid JSON with ALL closing brackets/braces
- Times in 24-hour format (HH:MM)"""


def build_task_generation_prompt(
    prefs: Optional[Preferences],
    weather: Optional[WeatherSnapshot],
    existing_tasks: Sequence[TaskSnapshot],
    existing_plan: Optional[Mapping[str, Any]] = None,
    custom_prompts: Optional[Iterable[str]] = None,
    align_with_schedule: bool = False,
    time_context: Optional[TimeContext] = None,
) -> str:
    ctx = time_context or current_time_context()
    p = _prefs_dict(prefs)

    schedule_section = ""
    schedule = (existing_plan or {}).get("schedule") if align_with_schedule else None
    if isinstance(schedule, list) and schedule:
        items = "\n".join(
            f"{item.get('time')}: {item.get('activity')} ({item.get('duration')}min)"
            for item in schedule
            if isinstance(item, Mapping)
        )
        schedule_section = f"""
EXISTING SCHEDULE (CRITICAL - ALIGN NEW TASKS):
{items}

ALIGNMENT REQUIREMENTS:
- NEW TASKS must fit into available time slots in the existing schedule
- DO NOT conflict with existing scheduled activities
- Consider break times and transitions"""

    tasks_section = ""
    if existing_tasks:
        task_list = "\n".join(
            f'ID: "{t.id}" - "{t.title}" [{t.duration_minutes}min] [{t.importance}] [Status: {t.status}]'
            for t in existing_tasks
        )
        tasks_section = f"""
EXISTING TASKS TO CONSIDER:
{task_list}

- CRITICAL: To modify or delete a task you MUST include its exact ID shown above
- IDs look like "123e4567-e89b-12d3-a456-426614174000"
- NEVER modify or delete a task using only its title
- Generate tasks that complement existing ones and avoid near-duplicates"""

    custom = _custom_instructions(custom_prompts, "These instructions must be prioritized when generating tasks.")
    weather_desc = weather.summary if weather else "unknown weather conditions"

    return f"""You are a PRECISION AI task generator. Generate EXACTLY 3-5 highly relevant, actionable tasks.

CONTEXT ANALYSIS:
- Current time: {ctx.current_time}
- Date: {ctx.current_date}
- User preferences: {json.dumps(p)}
- Weather: {weather_desc}
- Weather guidance: {weather_guidance(weather)}
{schedule_section}
{tasks_section}
{custom}

GENERATION RULES:
1. Tasks MUST suit the weather conditions
2. Schedule demanding tasks during the user's peak focus time ({p.get("peak_focus") or "morning"})
3. Durations between 15 and 120 minutes, varied by complexity
4. Times between wake time {p.get("wake_time") or "09:00"} and sleep time {p.get("sleep_time") or "23:00"}
5. {"Times must NOT conflict with the existing schedule" if schedule_section else "High-importance tasks during peak focus"}

RESPONSE FORMAT - VALID JSON ARRAY ONLY:
[
  {{"title": "Specific actionable task", "duration": 30, "importance": "high|medium|low", "scheduledTime": "HH:MM"}},
  {{"id": "EXACT-ID-FROM-LIST-ABOVE", "action": "delete", "title": "Task to be deleted"}},
  {{"id": "EXACT-ID-FROM-LIST-ABOVE", "action": "modify", "title": "Updated title", "duration": 45, "importance": "medium", "scheduledTime": "HH:MM"}}
]

CRITICAL REQUIREMENTS:
- NO markdown, NO explanations, NO extra text
- New tasks have NO id and NO action field
- NEVER delete or modify a task without its EXACT id"""


def build_task_extraction_prompt(
    transcript: str,
    prefs: Optional[Preferences],
    time_context: Optional[TimeContext] = None,
) -> str:
    ctx = time_context or current_time_context()
    return f"""You are a precision task extraction AI. Extract tasks from user speech, being flexible and helpful while maintaining accuracy.

CONTEXT:
- Current time: {ctx.current_time}
- Current date: {ctx.current_date}
- User preferences: {json.dumps(_prefs_dict(prefs))}
- User transcript: "{transcript}"

EXTRACTION RULES:
1. Extract ANY actionable item mentioned, even if brief ("Call mom", "Workout").
2. If a time is mentioned, convert it to 24-hour HH:MM ("2 PM" -> "14:00", "at 9:00 AM" -> "09:00").
3. Use explicit durations ("2 hours" = 120); otherwise estimate: calls/emails 15-30, work 60-120, exercise 30-60.
4. Importance: "urgent", "ASAP", "deadline", "important" -> high; "maybe", "sometime", "if I have time" -> low; otherwise medium.
5. Make titles actionable and clear.

RESPONSE FORMAT - VALID JSON ONLY:
[
  {{"title": "Clear, actionable task name", "duration": 30, "importance": "high|medium|low", "scheduledTime": "HH:MM or null", "notes": "context from speech or null"}}
]

- ALWAYS return a JSON array, even for a single task
- NO markdown, NO explanations outside JSON"""


def group_by_status(tasks: Sequence[TaskSnapshot]) -> Dict[str, List[TaskSnapshot]]:
    groups: Dict[str, List[TaskSnapshot]] = {"backlog": [], "todo": [], "doing": [], "done": []}
    for task in tasks:
        groups.setdefault(task.status or "todo", []).append(task)
    return groups


def _weather_line(weather: Optional[WeatherSnapshot]) -> str:
    return weather.summary if weather else "Not available"


def build_dictation_prompt(
    tasks: Sequence[TaskSnapshot],
    weather: Optional[WeatherSnapshot],
    time_context: TimeContext,
) -> str:
    ctx = time_context
    groups = group_by_status(tasks)

    def _line(task: TaskSnapshot, with_time: bool = False) -> str:
        suffix = f" at {task.scheduled_time}" if with_time and task.scheduled_time else ""
        return f"- {task.title} ({task.duration_minutes} min, {task.importance} priority){suffix}"

    if ctx.is_working_hours and not ctx.is_weekend:
        guidance = "Suggest focusing on professional tasks during working hours"
    elif ctx.is_weekend:
        guidance = "Weekend - perfect for personal projects and preparation"
    else:
        guidance = "Good time for personal tasks and planning for tomorrow"

    return f"""Create a time-aware verbal dictation for these Kanban board tasks.

CURRENT CONTEXT:
- Time: {ctx.current_time} ({ctx.time_of_day})
- Date: {ctx.current_date}
- Context: {ctx.label}
- Weather: {_weather_line(weather)}

BACKLOG ({len(groups["backlog"])} tasks):
{chr(10).join(_line(t) for t in groups["backlog"])}

TO DO ({len(groups["todo"])} tasks):
{chr(10).join(_line(t, with_time=True) for t in groups["todo"])}

IN PROGRESS ({len(groups["doing"])} tasks):
{chr(10).join(_line(t) for t in groups["doing"])}

COMPLETED ({len(groups["done"])} tasks):
{chr(10).join(f"- {t.title}" for t in groups["done"])}

GUIDELINES:
- It is currently {ctx.time_of_day} on a {"weekend" if ctx.is_weekend else "weekday"}
- {guidance}
- Highlight progress made and suggest next priorities
- Keep it conversational, encouraging and under 250 words"""


def build_question_prompt(
    question: str,
    tasks: Sequence[TaskSnapshot],
    weather: Optional[WeatherSnapshot],
    time_context: TimeContext,
    has_plan: bool = False,
) -> str:
    ctx = time_context
    groups = group_by_status(tasks)
    todo_titles = [t.title for t in groups["todo"]]
    todo_preview = ", ".join(todo_titles[:3]) + ("..." if len(todo_titles) > 3 else "")
    doing_titles = ", ".join(t.title for t in groups["doing"]) or "None"

    return f"""Answer the user's question directly and helpfully based on their current context. Be specific and actionable.

CURRENT CONTEXT:
- Time: {ctx.current_time} ({ctx.time_of_day})
- Date: {ctx.current_date}
- Context: {ctx.label}
- Weather: {_weather_line(weather)}
- Plan for today: {"available" if has_plan else "not generated"}

TASKS SUMMARY:
- Backlog: {len(groups["backlog"])} tasks
- To Do: {len(groups["todo"])} tasks ({todo_preview})
- In Progress: {len(groups["doing"])} tasks ({doing_titles})
- Completed: {len(groups["done"])} tasks today

USER QUESTION: "{question}"

Respond in 2-3 sentences, suggest time-appropriate activities, and do not show your reasoning."""


def build_insights_prompt(
    stats: Mapping[str, Any],
    tasks: Sequence[TaskSnapshot],
    trends: Mapping[str, Mapping[str, Any]],
    time_context: TimeContext,
    has_plan: bool,
    peak_focus: Optional[str],
) -> str:
    ctx = time_context
    groups = group_by_status(tasks)
    summary = stats["summary"]
    priorities = stats["priorities"]

    def _lines(items: Sequence[TaskSnapshot], empty: str) -> str:
        return "\n".join(f"- {t.title} ({t.duration_minutes}min, {t.importance})" for t in items) or empty

    trend_lines = "\n".join(
        f"{day}: {data['completed']}/{data['total']} completed ({data['totalTime']}min)" for day, data in trends.items()
    )

    return f"""Analyze this user's productivity performance and provide actionable insights:

CURRENT PERFORMANCE (TODAY):
- Total Tasks: {summary["totalTasks"]}
- Completed: {summary["completedTasks"]} ({summary["completionRate"]}%)
- In Progress: {summary["inProgressTasks"]}
- Time Utilization: {summary["timeUtilization"]}% ({summary["completedTime"]}/{summary["totalPlannedTime"]} minutes)
- Priority Breakdown: {priorities["high"]} high, {priorities["medium"]} medium, {priorities["low"]} low

CONTEXT:
- Time: {ctx.current_time} ({ctx.time_of_day})
- Day Type: {"Weekend" if ctx.is_weekend else "Weekday"}
- Has AI Plan: {has_plan}
- User Peak Focus: {peak_focus or "Not set"}

RECENT TASKS COMPLETED:
{_lines(groups["done"], "None yet")}

TASKS IN PROGRESS:
{_lines(groups["doing"], "None")}

PENDING TASKS:
{_lines(groups["todo"][:5], "None")}

WEEKLY TREND DATA:
{trend_lines}

Cover performance, time management, priorities, patterns and next steps for today.
Keep it personal, actionable and encouraging. Maximum 300 words."""
