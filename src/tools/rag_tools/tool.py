"""RAG tool functions for the lecture chat agents.

These functions are registered as agent tools. Their docstrings are shown to
the model and guide when it calls them.
"""

from pydantic_ai import RunContext
from pydantic_ai.tools import ToolDefinition

from src.agent.deps import AgentDeps
from src.tools.rag_tools.service import search_transcript_chunks


async def within_step_budget(
    ctx: RunContext[AgentDeps], tool_def: ToolDefinition
) -> ToolDefinition | None:
    """Hide a tool on the last allowed model request so the model must answer."""
    if ctx.run_step >= ctx.deps.max_steps:
        return None
    return tool_def


async def search_lecture_content(
    ctx: RunContext[AgentDeps],
    query: str,
    match_count: int = 5,
) -> str:
    """Search the student's lecture transcripts for passages relevant to a query.

    Use this when you need to:
    - Find where a concept was explained in the lecture(s)
    - Look up details that are not in the context you were given
    - Check exact wording, definitions, formulas or examples from class

    Do NOT use this for:
    - Questions already answered by the transcript context in the prompt
    - General knowledge questions unrelated to the student's classes

    Args:
        ctx: RunContext containing agent dependencies.
        query: Focused description of what to find, e.g.
            "definition of eigenvalues" or "causes of the French Revolution".
        match_count: Number of passages to return (1-10). Default: 5.

    Returns:
        Matching transcript passages with similarity scores, or a message
        saying nothing relevant was found.
    """
    return await search_transcript_chunks(
        ctx.deps.storage,
        ctx.deps.embedding_service,
        query,
        match_count,
        lecture_id=ctx.deps.lecture_id,
        course_id=ctx.deps.course_id,
    )
