"""
System instruction builder for the live session.

The instruction is regenerated on every connect from the time of day, the
display size class, owner preferences, long-term memory, whether a prior
transcript exists and the active persona.
"""

from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from mayra.core.models import AssistantMode, MemoryItem, OwnerPreferences

_SCREEN_GUIDANCE = {
    "mobile": (
        "Mobile Smartphone",
        "DISPLAY CONTEXT: SMALL MOBILE SCREEN (Portrait). RESPONSE STRATEGY: EXTREMELY CONCISE. "
        "Use short paragraphs and avoid long blocks of text. Maximum 2-3 sentences per turn "
        "unless a deep explanation is requested.",
    ),
    "tablet": (
        "Tablet",
        "DISPLAY CONTEXT: TABLET SCREEN. RESPONSE STRATEGY: Balanced detail at a comfortable "
        "reading length; slightly more detailed than on mobile.",
    ),
    "desktop": (
        "Desktop/Laptop",
        "DISPLAY CONTEXT: LARGE DESKTOP SCREEN. RESPONSE STRATEGY: Detailed, comprehensive "
        "responses are fine. Use standard formatting and structured lists where appropriate.",
    ),
}

_MODE_GUIDANCE = {
    AssistantMode.DEFAULT: "Warm, capable general assistant.",
    AssistantMode.LAWYER: "Precise legal assistant: structured reasoning, cite the relevant principle, flag when a licensed lawyer is needed.",
    AssistantMode.TEACHER: "Patient teacher: explain step by step, check understanding, use simple examples.",
    AssistantMode.INTERVIEW_COACH: "Interview coach: ask realistic questions, give direct feedback on answers.",
    AssistantMode.MOTIVATIONAL_COACH: "Motivational coach: energetic, encouraging, focused on concrete next steps.",
    AssistantMode.LIFE_ASSISTANT: "Life assistant: practical help with planning, reminders and everyday decisions.",
}

RESUME_INSTRUCTION = (
    "A previous conversation context was found. RESUME naturally from the last message. "
    "Do NOT ask 'What were you saying?'."
)

NO_MEMORIES = "No long-term memories stored yet."


def time_of_day(hour: int) -> str:
    if hour < 5:
        return "Night"
    if hour < 12:
        return "Morning"
    if hour < 17:
        return "Afternoon"
    if hour < 21:
        return "Evening"
    return "Night"


def screen_class(width: int) -> str:
    if width < 768:
        return "mobile"
    if width < 1024:
        return "tablet"
    return "desktop"


def device_context(width: int) -> Tuple[str, str]:
    """(device label, response-length guidance) for a display width in px."""
    return _SCREEN_GUIDANCE[screen_class(width)]


def format_memories(memories: Iterable[MemoryItem]) -> str:
    lines = [f"[ID:{i}] [{m.category}]: {m.details}" for i, m in enumerate(memories)]
    return "\n".join(lines) if lines else NO_MEMORIES


def onboarding_instruction(prefs: OwnerPreferences) -> str:
    if not prefs.name:
        return (
            "CURRENT STATE: FIRST LAUNCH / NEW USER. User name is UNKNOWN. Your PRIORITY is to "
            "introduce yourself warmly and ask the user what they would like to be called. Once "
            "they provide a name, IMMEDIATELY call the 'set_user_name' tool."
        )
    return (
        f'CURRENT STATE: RETURNING OWNER. Owner Name: "{prefs.name}". '
        "Welcome them back naturally using their name."
    )


def build_system_instruction(
    prefs: OwnerPreferences,
    memories: List[MemoryItem],
    has_history: bool,
    mode: AssistantMode = AssistantMode.DEFAULT,
    screen_width: int = 1280,
    tool_names: Optional[List[str]] = None,
    now: Optional[datetime] = None,
) -> str:
    now = now or datetime.now()
    device_label, device_guidance = device_context(screen_width)
    tools = ", ".join(f"'{name}'" for name in (tool_names or []))

    sections = [
        "You are MAYRA, a voice-first personal assistant. You answer instantly in a warm, "
        "natural, expressive female voice and keep the on-screen chat separate from your memory.",
        "DOCUMENTS:\nWhen the owner asks for a letter, application, report, resume, agreement or any "
        "other structured document, write it with real-world professional formatting, call "
        "'create_document', then confirm: \"Editable document saved in your Downloads folder.\"",
        "STYLE:\nSound human and context-aware. No robotic phrasing, no AI disclaimers. Begin "
        "speaking as soon as the intent is clear.",
        "CHAT VS MEMORY:\nOn \"clear chat\", \"clean screen\" or \"reset chat\" call 'clear_chat' and "
        "reply \"Chat cleared. I'm still here.\" Clearing the chat never erases the owner's "
        "identity, long-term memory, preferences or mode.",
        "RECOVERY:\n" + (RESUME_INSTRUCTION + "\n" if has_history else "") +
        "If interrupted, restore context and continue.",
        f"DEVICE: {device_label}\n{device_guidance}",
        f"PERSONA MODE: {mode.value}\n{_MODE_GUIDANCE[mode]}",
        f"OWNER CONTEXT:\n{onboarding_instruction(prefs)}",
        f"PERSISTENT MEMORY:\n{format_memories(memories)}",
        f"TOOLS AVAILABLE:\n{tools}",
        "INTERACTION RULES:\n- The user has just toggled you ON.\n"
        f"- Current Time: {time_of_day(now.hour)}.",
    ]
    return "\n\n".join(sections) + "\n"
