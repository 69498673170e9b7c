"""Lecture chat agent definitions.

Defines the system prompts and factories for the Pydantic AI agents used by
single-lecture chat, course-wide chat and chat title generation.
"""

from pydantic_ai import Agent
from pydantic_ai.models import Model

from src.agent.config import get_model
from src.agent.deps import AgentDeps
from src.tools.rag_tools.tool import search_lecture_content, within_step_budget

# ==============================================================================
# System Prompts
# ==============================================================================

LECTURE_CHAT_SYSTEM_PROMPT = """You are KnowNotes AI, a friendly study assistant.

You're chatting with a high school or college student who is listening to a lecture. Your job is to help them understand the lecture and take notes.

## Context
The student's message includes the lecture transcript (each line starts with an HH:MM:SS timestamp). Treat it as the primary source.

## Tool Usage
Use `search_lecture_content` only when the transcript in the prompt is missing or does not cover the question. It searches the embedded transcript of this lecture.

## Response Format
- Keep answers concise and helpful
- Cite timestamps when you refer to a moment in the lecture: "At [12:40] the lecturer..."
- Use Markdown: short paragraphs, bullet points, bold key terms
- Write math with KaTeX: \\(...\\) inline and \\[...\\] for blocks
"""

COURSE_CHAT_SYSTEM_PROMPT = """You are KnowNotes AI, a friendly tutor for a high school or college student.

Answer any questions or requests they have about their course. The student's message includes context assembled from their past lectures, most recent first, each under a "Lecture:" header.

## Tool Usage
Use `search_lecture_content` when the provided context does not cover the question, for example when older lectures were left out of the context. It searches every lecture in this course.

## Response Format
- Say which lecture an answer comes from, using its title
- Keep answers focused and scannable: short paragraphs, bullet points, bold key terms
- Write math with KaTeX: \\(...\\) inline and \\[...\\] for blocks
- If the context doesn't contain the answer, say so before answering from general knowledge
"""

TITLE_SYSTEM_PROMPT = """Generate a short title for a conversation that starts with the user's message.
- At most 80 characters
- No quotes, colons or trailing punctuation
- Summarize the topic, not the request"""


# ==============================================================================
# Agent Factories
# ==============================================================================


def create_chat_agent(
    system_prompt: str, model: Model | None = None
) -> Agent[AgentDeps, str]:
    """Create a chat agent with the transcript search tool registered.

    Args:
        system_prompt: Instructions for the agent.
        model: Model override (tests pass FunctionModel/TestModel).
            Defaults to the environment-configured model.

    Returns:
        Agent producing plain-text output.
    """
    agent = Agent(
        model or get_model(),
        instructions=system_prompt,
        deps_type=AgentDeps,
        retries=2,
    )
    agent.tool(search_lecture_content, prepare=within_step_budget)
    return agent


def create_lecture_agent(model: Model | None = None) -> Agent[AgentDeps, str]:
    return create_chat_agent(LECTURE_CHAT_SYSTEM_PROMPT, model)


def create_course_agent(model: Model | None = None) -> Agent[AgentDeps, str]:
    return create_chat_agent(COURSE_CHAT_SYSTEM_PROMPT, model)


def create_title_agent(model: Model | None = None) -> Agent[None, str]:
    """Create the tool-less agent that names new course chats."""
    return Agent(model or get_model(), instructions=TITLE_SYSTEM_PROMPT)
