"""Prompt text for coaching question generation, plus the starter question library."""

from __future__ import annotations

from typing import Dict, List, Sequence

from coaching_assistant.models import QuestionStyle, TranscriptFragment

QUESTION_SYSTEM_PROMPT = (
    "You are an expert executive coach. Generate powerful, open-ended coaching questions."
)

# Starter questions grouped by methodology, then by stage of the conversation.
QUESTION_LIBRARY: Dict[str, Dict[str, List[str]]] = {
    "GROW": {
        "goal": [
            "What would you like to achieve from this conversation?",
            "What does success look like for you?",
            "What would be different if you achieved this goal?",
        ],
        "reality": [
            "What is the current situation?",
            "What have you tried so far?",
            "What obstacles are you facing?",
        ],
        "options": [
            "What options do you have?",
            "What else could you do?",
            "Who could help you with this?",
        ],
        "way_forward": [
            "What are your next steps?",
            "When will you take this action?",
            "How will you know you've succeeded?",
        ],
    },
    "POWERFUL": {
        "awareness": [
            "What are you noticing about yourself right now?",
            "What patterns do you see emerging?",
            "What's the story you're telling yourself?",
        ],
        "perspective": [
            "How might others see this situation?",
            "What assumptions are you making?",
            "What if the opposite were true?",
        ],
        "action": [
            "What's one small step you could take today?",
            "What would you do if you knew you couldn't fail?",
            "What needs to happen for you to move forward?",
        ],
        "learning": [
            "What have you learned from this experience?",
            "How has your thinking shifted?",
            "What will you do differently next time?",
        ],
    },
    "APPRECIATIVE": {
        "discover": [
            "What's working well for you right now?",
            "When have you felt most energized recently?",
            "What strengths are you bringing to this situation?",
        ],
        "dream": [
            "What would your ideal outcome look like?",
            "If anything were possible, what would you create?",
            "What excites you most about this possibility?",
        ],
        "design": [
            "What resources do you need to make this happen?",
            "How can you build on what's already working?",
            "What support would be most helpful?",
        ],
        "destiny": [
            "What commitment are you ready to make?",
            "How will you celebrate your progress?",
            "What will sustain your momentum?",
        ],
    },
}

STYLE_GUIDELINES: Dict[QuestionStyle, str] = {
    QuestionStyle.FOCUSED: (
        "Focus on creating very specific, targeted questions that dig deep into the current topic.\n"
        "Questions should be short, direct, and challenge the coachee's current thinking."
    ),
    QuestionStyle.BALANCED: (
        "Create a mix of exploratory and action-oriented questions.\n"
        "Balance between understanding the situation and moving toward solutions.\n"
        "Questions should encourage both reflection and forward movement."
    ),
    QuestionStyle.EXPLORATORY: (
        "Focus on open-ended questions that encourage deep exploration and self-discovery.\n"
        "Questions should help uncover underlying beliefs, values, and motivations.\n"
        "Avoid leading questions or those that suggest specific actions."
    ),
}

QUESTION_GUIDELINES = """Guidelines for powerful coaching questions:
- Use open-ended questions that cannot be answered with yes/no
- Keep questions short and clear (ideally under 15 words)
- Focus on the coachee's thoughts, feelings, and actions
- Avoid "why" questions when possible (use "what" or "how" instead)
- Include questions that challenge assumptions
- Ensure questions are non-judgmental and curious"""

METHODOLOGY_PROMPTS: Dict[str, str] = {
    "general": "Generate coaching questions that help the coachee gain clarity and move forward.",
    "grow": """Generate questions following the GROW model:
- Goal: What does the coachee want to achieve?
- Reality: What is the current situation?
- Options: What possibilities exist?
- Way Forward: What are the next steps?""",
    "appreciative": """Generate questions using Appreciative Inquiry:
- Focus on strengths and what's working well
- Explore possibilities and positive futures
- Build on existing resources and successes""",
    "solution_focused": """Generate solution-focused questions:
- Focus on solutions rather than problems
- Explore what's already working
- Identify small steps toward the preferred future""",
    "transformational": """Generate transformational coaching questions:
- Challenge limiting beliefs and assumptions
- Explore values and deeper purpose
- Encourage new perspectives and paradigm shifts""",
}

NO_CONTEXT_NOTICE = "No specific context provided - generate general powerful coaching questions."


def methodology_prompt(methodology: str = "general") -> str:
    return METHODOLOGY_PROMPTS.get((methodology or "").lower(), METHODOLOGY_PROMPTS["general"])


def format_dialogue(fragments: Sequence[TranscriptFragment]) -> str:
    """Dialogue as ``Coach: ...`` / ``Coachee: ...`` lines, oldest first."""
    return "\n".join(f"{f.speaker.label}: {f.text}" for f in fragments).strip()


def build_question_prompt(
    fragments: Sequence[TranscriptFragment],
    count: int,
    style: QuestionStyle = QuestionStyle.BALANCED,
    methodology: str = "general",
) -> str:
    """
    Single prompt builder for question generation, shared by all providers.
    The output instruction is kept strict so the reply parses line by line.
    """
    convo = format_dialogue(fragments)
    if convo:
        context = f"Recent conversation context:\n{convo}"
    else:
        context = NO_CONTEXT_NOTICE

    return f"""As an expert executive coach, generate {count} powerful coaching question(s) based on the conversation context provided.

{STYLE_GUIDELINES.get(style, STYLE_GUIDELINES[QuestionStyle.BALANCED])}

{methodology_prompt(methodology)}

{QUESTION_GUIDELINES}

{context}

Output format: Provide exactly {count} question(s), numbered and separated by newlines.
Only output the questions themselves, no additional explanation or context."""


def build_follow_up_prompt(question: str, response: str, count: int = 1) -> str:
    return f"""The coach asked: "{question}"
The coachee responded: "{response}"

Generate {count} follow-up question(s) that:
- Build on what the coachee just shared
- Go deeper into the topic without being repetitive
- Help the coachee explore further or clarify their thinking
- Move the conversation forward productively

Output only the question(s), numbered if multiple."""


def library_questions(methodology: str = "") -> Dict[str, Dict[str, List[str]]]:
    """The starter question bank, optionally narrowed to one methodology."""
    if not methodology:
        return {name: {stage: list(qs) for stage, qs in stages.items()} for name, stages in QUESTION_LIBRARY.items()}
    key = methodology.upper()
    if key not in QUESTION_LIBRARY:
        raise KeyError(f"Unknown question library '{methodology}'")
    return {key: {stage: list(qs) for stage, qs in QUESTION_LIBRARY[key].items()}}
