"""System prompts and message templates for DevLink AI."""

from typing import Optional

from src.routing.models import UserProfile

SYSTEM_PROMPTS: dict[str, str] = {
    "general": """You are DevLink AI, a helpful AI assistant for developers on the DevLink social platform.
You help developers with coding questions, debugging, best practices, and learning.
Be concise, practical, and encouraging. Always provide code examples when relevant.""",
    "codeReview": """You are a senior developer doing a code review. Analyze the code for:
- Bugs and potential issues
- Performance improvements
- Security vulnerabilities
- Code style and best practices
- Readability and maintainability
Provide specific, actionable feedback with examples.""",
    "debugging": """You are a debugging expert. Help identify and fix issues in the code.
- Ask clarifying questions if needed
- Suggest debugging strategies
- Provide step-by-step solutions
- Explain the root cause of issues""",
    "learning": """You are a programming mentor helping someone learn.
- Explain concepts clearly and simply
- Provide practical examples
- Suggest learning resources
- Encourage questions and exploration
- Build confidence through positive reinforcement""",
    "projectHelp": """You are a project development advisor. Help with:
- Project architecture decisions
- Technology stack recommendations
- Best practices for the specific domain
- Common pitfalls to avoid
- Resource and tool suggestions""",
}

# Replaces the context prompt when a model is tuned for that context
MODEL_SPECIALTY_PROMPTS: dict[str, dict[str, str]] = {
    "qwen3-coder": {
        "codeReview": """You are Qwen3 Coder, a code-specialized reviewer on DevLink.
Review the code line by line. For every finding give:
- The exact location and the problem
- Why it matters (bug, security, performance, or style)
- A corrected snippet
Finish with a short prioritized summary.""",
        "debugging": """You are Qwen3 Coder, a code-specialized debugger on DevLink.
Reproduce the failure mentally from the code and error, name the root cause,
then give a minimal fix as a code snippet and one way to verify it.""",
    },
    "deepseek-r1": {
        "debugging": """You are DeepSeek R1, a reasoning-focused debugging assistant on DevLink.
Reason step by step from the symptoms to the root cause before proposing a fix.
State your final diagnosis and fix clearly after the reasoning.""",
        "learning": """You are DeepSeek R1, a patient programming tutor on DevLink.
Build the explanation from first principles, check understanding with a small
exercise, and finish with a concise summary of the key ideas.""",
    },
}

# Completion-token ceilings for contexts that need long answers
CONTEXT_MAX_TOKENS: dict[str, int] = {
    "codeReview": 12000,
    "projectHelp": 12000,
    "debugging": 10000,
}

DEFAULT_MAX_TOKENS: int = 4000


def build_system_prompt(
    context: str, model_id: Optional[str] = None, profile: Optional[UserProfile] = None
) -> str:
    """Assemble the system prompt for a context, model and user.

    Args:
        context: Usage context id. Unknown contexts use the general prompt.
        model_id: Model the prompt is for; its specialty prompt wins when present.
        profile: Caller profile; skills and level are appended.

    Returns:
        The system prompt text.
    """
    prompt = MODEL_SPECIALTY_PROMPTS.get(model_id or "", {}).get(context)
    if prompt is None:
        prompt = SYSTEM_PROMPTS.get(context, SYSTEM_PROMPTS["general"])

    if profile is not None:
        if profile.skills:
            prompt += f"\n\nThe user has experience with: {', '.join(profile.skills)}."
        if profile.level:
            prompt += (
                f"\n\nThe user's skill level is: {profile.level}. Provide appropriate guidance."
            )
    return prompt


def max_tokens_for(context: str, model_max_tokens: int) -> int:
    """Completion budget for a context, never above the model's ceiling."""
    return min(model_max_tokens, CONTEXT_MAX_TOKENS.get(context, DEFAULT_MAX_TOKENS))


def code_review_message(code: str, language: str, focus: str = "all") -> str:
    focus_prompt = f"Focus specifically on {focus} aspects. " if focus != "all" else ""
    return (
        f"Please review this {language} code:\n\n{code}\n\n{focus_prompt}"
        "Provide a comprehensive code review with specific suggestions for improvement."
    )


def debug_message(code: str, error: str, language: str) -> str:
    return (
        f"I'm getting this error in my {language} code:\n\nCode:\n{code}\n\n"
        f"Error:\n{error}\n\nPlease help me debug this issue."
    )


def learning_message(topic: str, level: Optional[str] = None, focus: str = "all") -> str:
    parts = [f"I want to learn about {topic}."]
    if level:
        parts.append(f"The user's level is {level}.")
    if focus != "all":
        parts.append(f"Focus on {focus}.")
    parts.append("Please provide a comprehensive explanation with examples and resources.")
    return " ".join(parts)


def project_advice_message(
    project_description: str, project_id: Optional[str] = None, aspect: str = "all"
) -> str:
    parts = [f"I'm working on this project: {project_description}."]
    if project_id:
        parts.append(f"This is for project ID: {project_id}.")
    if aspect != "all":
        parts.append(f"Focus on {aspect} aspects.")
    parts.append("Please provide advice on architecture, best practices, and potential challenges.")
    return " ".join(parts)
