"""
Prompt Construction

Chooses a prompt mode from the retrieval state and the message intent, and
renders the system prompt plus sampling budget for that mode.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

from docqa.agents.intent import Intent
from docqa.config.settings import AgentSettings
from docqa.rag.models import SearchHit


class PromptMode(str, Enum):
    GROUNDED = "grounded"
    WORKSPACE_LISTING = "workspace_listing"
    GENERAL_KNOWLEDGE = "general_knowledge"
    EXPLORATION = "exploration"
    CROSS_DOCUMENT = "cross_document"
    DRAFTING = "drafting"


@dataclass(frozen=True)
class PromptPlan:
    """Everything the agent loop needs to start a cycle."""
    mode: PromptMode
    system_prompt: str
    tools_enabled: bool
    temperature: float
    max_tokens: int


BASE_INSTRUCTIONS = """You are a helpful assistant working over the user's document workspace.

Workspace: every document lives in a single uploads directory. Always use paths relative to it (e.g. "report.pdf", "notes/todo.txt") when calling tools. Stored uploads carry a numeric timestamp prefix such as "1762428737786-report.pdf".

Tools:
- list_dir: list files and folders in the workspace
- extract_document: full text of a document (PDF, DOCX, XLSX, TXT, TEX)
- read_file: numbered lines of a text file, paged with offset/limit
- grep_files: find files whose content matches a regex
- insert_text: insert text into a file at a line/column (only when the user approves an edit, or when filling in a newly created article)
- create_latex_file: create a new LaTeX article skeleton about a topic

Workflow:
1. To answer "what documents do I have", call list_dir.
2. If a specific document is named or active, read it with extract_document.
3. Otherwise search across documents with grep_files before answering.
4. Cite sources as [filename lines X-Y] for content answers, never for file listings.
5. When editing .tex files keep LaTeX syntax valid and propose edits as LaTeX code blocks."""

WORKSPACE_LISTING_INSTRUCTIONS = """The user wants a listing of their files, not an answer about file contents.
Call list_dir, then present the result as a bulleted list ("Here are the documents in your workspace:") with timestamp prefixes removed (e.g. "1762428737786-report.pdf" becomes "report.pdf").
Do not describe the tool call, do not cite sources and do not add a general-knowledge note."""

GENERAL_KNOWLEDGE_INSTRUCTIONS = """No relevant documents were found in the workspace for this question.
Answer from general knowledge, accurately and helpfully, and state clearly that the answer is not based on the workspace documents."""

CROSS_DOCUMENT_INSTRUCTIONS = """The user refers to these documents by name: {documents}.
You must read each of them before answering: confirm the exact filename with list_dir if needed, then use extract_document (or grep_files to locate passages).
Synthesize across all the documents involved and say which document each point comes from. Ask for confirmation before inserting synthesized text into a file."""

DRAFTING_INSTRUCTIONS = """The user wants a new article. Do all of the following without asking for permission:
1. Call create_latex_file with a suitable filename and the topic.
2. Call read_file on the new file to find the line numbers of each section.
3. Write substantial content (2-4 paragraphs per section) and insert it with insert_text after the abstract opening and after each \\section line: Introduction, Background and Fundamentals, Key Concepts and Principles, Applications and Use Cases, Current Developments and Future Directions, Conclusion.
4. Insert from the bottom of the file upwards so earlier line numbers stay valid, and read the file again at the end to check the result."""

GROUNDED_INSTRUCTIONS = """The relevant content has already been retrieved from {document_count} document(s) in the workspace; tools are not available for this answer.
Answer using ONLY the sources below. Cite them as [filename lines X-Y], adding " pN" for pages or " sheet:Name" for spreadsheet sheets when the source shows them.
If the answer is not in these sources, say so explicitly: "Based on the documents in your workspace, I could not find information about <topic>." You may then add a clearly labelled general-knowledge answer."""


def format_sources(retrieved: Sequence[SearchHit]) -> str:
    """Render retrieved chunks as numbered, citable sources."""
    return "\n\n".join(
        f"SOURCE {position} [{hit.chunk.citation()}]:\n{hit.chunk.text}"
        for position, hit in enumerate(retrieved, start=1)
    )


def _active_document_note(active_document: str) -> str:
    return (
        f'The user is currently viewing the document "{active_document}". '
        f'"This document" or "the document" without a name means "{active_document}". '
        "If the user names other documents, read those with tools as well; "
        "do not restrict yourself to the active document."
    )


def select_mode(
    intent: Intent,
    retrieved: Sequence[SearchHit],
    has_relevant_docs: bool,
    mentioned_documents: Sequence[str]
) -> PromptMode:
    if intent.is_drafting:
        return PromptMode.DRAFTING
    if intent.is_meta_question:
        return PromptMode.WORKSPACE_LISTING
    if mentioned_documents:
        return PromptMode.CROSS_DOCUMENT
    if retrieved:
        return PromptMode.GROUNDED
    if not has_relevant_docs:
        return PromptMode.GENERAL_KNOWLEDGE
    return PromptMode.EXPLORATION


def build_prompt_plan(
    intent: Intent,
    retrieved: Sequence[SearchHit],
    has_relevant_docs: bool = True,
    active_document: Optional[str] = None,
    mentioned_documents: Optional[Sequence[str]] = None,
    settings: Optional[AgentSettings] = None
) -> PromptPlan:
    """
    Build the system prompt and sampling budget for one answer cycle.

    Args:
        intent: Classified message intent
        retrieved: Chunks retrieved for the question, best first
        has_relevant_docs: False when retrieval found nothing usable at all
        active_document: Filename of the attached or selected document
        mentioned_documents: Other documents the user named
        settings: Sampling budgets per mode

    Returns:
        Prompt plan for the agent loop
    """
    settings = settings or AgentSettings()
    mentioned = list(mentioned_documents or [])
    mode = select_mode(intent, retrieved, has_relevant_docs, mentioned)

    sections: List[str] = [BASE_INSTRUCTIONS]
    if active_document:
        sections.append(_active_document_note(active_document))

    if mode == PromptMode.WORKSPACE_LISTING:
        sections.append(WORKSPACE_LISTING_INSTRUCTIONS)
    elif mode == PromptMode.GENERAL_KNOWLEDGE:
        sections.append(GENERAL_KNOWLEDGE_INSTRUCTIONS)
    elif mode == PromptMode.CROSS_DOCUMENT:
        sections.append(CROSS_DOCUMENT_INSTRUCTIONS.format(documents=", ".join(mentioned)))
    elif mode == PromptMode.DRAFTING:
        sections.append(DRAFTING_INSTRUCTIONS)
    elif mode == PromptMode.GROUNDED:
        document_count = len({hit.chunk.document_id for hit in retrieved})
        sections.append(GROUNDED_INSTRUCTIONS.format(document_count=document_count))

    if retrieved and mode != PromptMode.WORKSPACE_LISTING:
        sections.append("Retrieved content from workspace documents:\n\n" + format_sources(retrieved))

    if mode == PromptMode.DRAFTING:
        temperature, max_tokens = settings.drafting_temperature, settings.drafting_max_tokens
    elif mode == PromptMode.GENERAL_KNOWLEDGE:
        temperature, max_tokens = settings.general_temperature, settings.general_max_tokens
    else:
        temperature, max_tokens = settings.grounded_temperature, settings.grounded_max_tokens

    return PromptPlan(
        mode=mode,
        system_prompt="\n\n".join(sections),
        tools_enabled=mode != PromptMode.GROUNDED,
        temperature=temperature,
        max_tokens=max_tokens,
    )


SINGLE_CALL_INSTRUCTIONS = """You are a helpful assistant for the user's document workspace. Follow instructions precisely and cite sources as [filename lines X-Y] whenever sources are provided."""

NO_SOURCES_NOTE = "No matching content was found in the workspace documents."


def build_single_call_plan(
    retrieved: Sequence[SearchHit],
    grounded: bool,
    temperature: float,
    max_tokens: int
) -> PromptPlan:
    """
    Build the prompt for one tool-free model call over content retrieved up front.

    Args:
        retrieved: Chunks to cite, best first
        grounded: Restrict the answer to the retrieved sources
        temperature: Sampling temperature
        max_tokens: Completion budget

    Returns:
        Prompt plan with tools disabled
    """
    sections: List[str] = [SINGLE_CALL_INSTRUCTIONS]
    if grounded:
        document_count = len({hit.chunk.document_id for hit in retrieved})
        sections.append(GROUNDED_INSTRUCTIONS.format(document_count=document_count))

    if retrieved:
        sections.append("Retrieved content from workspace documents:\n\n" + format_sources(retrieved))
    elif grounded:
        sections.append(NO_SOURCES_NOTE)

    return PromptPlan(
        mode=PromptMode.GROUNDED if grounded or retrieved else PromptMode.GENERAL_KNOWLEDGE,
        system_prompt="\n\n".join(sections),
        tools_enabled=False,
        temperature=temperature,
        max_tokens=max_tokens,
    )
