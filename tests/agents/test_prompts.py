"""Unit tests for prompt mode selection and prompt rendering."""

import pytest

from docqa.agents.intent import Intent
from docqa.agents.prompts import PromptMode, build_prompt_plan, format_sources, select_mode
from docqa.config.settings import AgentSettings
from docqa.rag.models import Chunk, SearchHit


def hit(document_id="doc-1", filename="report.pdf", text="Revenue grew 12%", page=None, sheet=None):
    chunk = Chunk(
        document_id=document_id,
        filename=filename,
        text=text,
        line_start=4,
        line_end=6,
        page=page,
        sheet=sheet,
        embedding=(1.0,),
    )
    return SearchHit(chunk=chunk, score=0.8)


@pytest.mark.parametrize("intent,retrieved,relevant,mentioned,expected", [
    (Intent(is_drafting=True, is_meta_question=True), [hit()], True, ["x"], PromptMode.DRAFTING),
    (Intent(is_meta_question=True), [hit()], True, ["x"], PromptMode.WORKSPACE_LISTING),
    (Intent(), [hit()], True, ["x"], PromptMode.CROSS_DOCUMENT),
    (Intent(), [hit()], True, [], PromptMode.GROUNDED),
    (Intent(), [], False, [], PromptMode.GENERAL_KNOWLEDGE),
    (Intent(), [], True, [], PromptMode.EXPLORATION),
])
def test_select_mode_precedence(intent, retrieved, relevant, mentioned, expected):
    assert select_mode(intent, retrieved, relevant, mentioned) == expected


def test_format_sources_cites_locations():
    rendered = format_sources([hit(page=2), hit(filename="data.xlsx", sheet="Q1", text="A2: 10")])

    assert "SOURCE 1 [report.pdf p2 lines 4-6]:\nRevenue grew 12%" in rendered
    assert "SOURCE 2 [data.xlsx sheet:Q1 lines 4-6]:\nA2: 10" in rendered


def test_grounded_plan_disables_tools_and_embeds_sources():
    plan = build_prompt_plan(Intent(), [hit(), hit(document_id="doc-2")], active_document="report.pdf")

    assert plan.mode == PromptMode.GROUNDED
    assert plan.tools_enabled is False
    assert "2 document(s)" in plan.system_prompt
    assert "[report.pdf lines 4-6]" in plan.system_prompt
    assert 'currently viewing the document "report.pdf"' in plan.system_prompt


def test_listing_plan_omits_retrieved_content():
    plan = build_prompt_plan(Intent(is_meta_question=True), [hit()])

    assert plan.mode == PromptMode.WORKSPACE_LISTING
    assert plan.tools_enabled is True
    assert "Revenue grew" not in plan.system_prompt


def test_cross_document_plan_names_documents():
    plan = build_prompt_plan(Intent(), [], mentioned_documents=["a.pdf", "b.docx"])

    assert plan.mode == PromptMode.CROSS_DOCUMENT
    assert "a.pdf, b.docx" in plan.system_prompt
    assert plan.tools_enabled is True


def test_sampling_budget_per_mode():
    settings = AgentSettings(
        drafting_temperature=0.9, drafting_max_tokens=5000,
        general_temperature=0.6, general_max_tokens=900,
        grounded_temperature=0.1, grounded_max_tokens=700,
    )

    drafting = build_prompt_plan(Intent(is_drafting=True), [], settings=settings)
    general = build_prompt_plan(Intent(), [], has_relevant_docs=False, settings=settings)
    exploration = build_prompt_plan(Intent(), [], settings=settings)

    assert (drafting.temperature, drafting.max_tokens) == (0.9, 5000)
    assert (general.temperature, general.max_tokens) == (0.6, 900)
    assert (exploration.temperature, exploration.max_tokens) == (0.1, 700)
    assert "general knowledge" in general.system_prompt
