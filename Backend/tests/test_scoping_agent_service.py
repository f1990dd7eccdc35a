import json

import pytest

from agents.scoping_agent.exceptions import ContextNotFound, ProviderError, ValidationFailed
from agents.scoping_agent.prompt_templates.v1.scoping_agent import ESCAPE_HATCH_NOTE, INITIAL_ANALYSIS_SYSTEM_PROMPT
from agents.scoping_agent.schemas import ImagePart
from agents.scoping_agent.services.scoping_agent_service import (
    INVALID_ESTIMATE_MESSAGE,
    MISSING_ESTIMATE_MESSAGE,
    _strip_code_fence,
)
from database.enums.project import AnalysisType, ProjectStatus
from fakes import (
    ListSink,
    ScriptedProvider,
    run,
    text_script,
    tool_script,
    valid_cost_estimate,
    valid_understanding_update,
)

IMAGE = ImagePart(media_type="image/jpeg", data="/9j/4AAQ")


def understanding_script(text="What size is the room?", **overrides):
    return tool_script("update_understanding", [json.dumps(valid_understanding_update(**overrides))], text=text)


def estimate_script(estimate=None, text="Here is your scope."):
    estimate = valid_cost_estimate() if estimate is None else estimate
    return tool_script("generate_estimate", [json.dumps(estimate)], text=text)


@pytest.fixture
def project_id(store):
    return store.add_project(
        title="Bathroom remodel",
        budget_approach="target_budget",
        budget_target=15000,
        understanding_score=30,
        interaction_count=2,
    )


# answer_question

def test_answer_question_persists_exchange(store, make_service, project_id):
    provider = ScriptedProvider(understanding_script(understanding=45))
    sink = ListSink()

    result = run(make_service(provider).answer_question(project_id, "It's about 8 by 10 feet", sink))

    assert result.success
    events = [event for event, _ in sink.frames()]
    assert events == ["token", "metadata", "done"]

    request = provider.requests[0]
    assert [tool.name for tool in request.tools] == ["update_understanding"]
    assert request.messages[0].content == "It's about 8 by 10 feet"
    assert "Bathroom remodel" in request.system_prompt

    interaction = store.interactions[project_id][-1]
    assert interaction["type"] == "question"
    assert interaction["user_input"] == "It's about 8 by 10 feet"
    assert interaction["ai_response"] == "What size is the room?"
    assert interaction["metadata"]["understanding"] == 45

    project = store.projects[project_id]
    assert project["understanding_score"] == 45
    assert project["interaction_count"] == 3
    assert project["understanding_dimensions"]["project_type"] is True


def test_answer_question_skips_invalid_update(store, make_service, project_id, log_messages):
    provider = ScriptedProvider(understanding_script(understanding=140))

    result = run(make_service(provider).answer_question(project_id, "Tile floors", ListSink()))

    assert result.success
    assert store.updates == []
    assert len(store.interactions[project_id]) == 1
    assert any("Invalid understanding update" in message for message in log_messages)


def test_answer_question_does_not_persist_failures(store, make_service, project_id):
    provider = ScriptedProvider([ProviderError("Bad request", 400)])
    sink = ListSink()

    result = run(make_service(provider).answer_question(project_id, "Tile floors", sink))

    assert not result.success
    assert store.interactions == {}
    assert store.updates == []
    assert sink.frames()[-1][0] == "error"


def test_fractional_understanding_does_not_break_next_turn(store, make_service, project_id):
    provider = ScriptedProvider(
        understanding_script(understanding=72.5),
        understanding_script(text="Any plumbing moves?", understanding=80),
    )
    service = make_service(provider)

    first = run(service.answer_question(project_id, "Swap the tub for a shower", ListSink()))
    assert first.success
    assert store.projects[project_id]["understanding_score"] == 72.5

    sink = ListSink()
    second = run(service.answer_question(project_id, "Keep the vanity", sink))

    assert second.success
    assert "Understanding score: 72.5%" in provider.requests[1].system_prompt
    assert sink.frames()[-1][0] == "done"
    assert store.projects[project_id]["understanding_score"] == 80


def test_answer_question_unknown_project(make_service):
    with pytest.raises(ContextNotFound):
        run(make_service(ScriptedProvider()).answer_question("64b7f0c2a1b2c3d4e5f60001", "Hi", ListSink()))


def test_escape_hatch_suggests_estimate(store, make_service):
    project_id = store.add_project(title="Deck", understanding_score=70, interaction_count=8)
    provider = ScriptedProvider(understanding_script(understanding=72))
    sink = ListSink()

    run(make_service(provider).answer_question(project_id, "Pressure-treated is fine", sink))

    assert ESCAPE_HATCH_NOTE.strip() in provider.requests[0].system_prompt
    frames = sink.frames()
    assert frames[-2] == ("done", {})
    assert frames[-1] == ("metadata", {"suggest_estimate": True})


@pytest.mark.parametrize("score, interaction_count", [(85, 8), (55, 12), (70, 7)])
def test_escape_hatch_inactive_outside_window(store, make_service, score, interaction_count):
    project_id = store.add_project(title="Deck", understanding_score=score, interaction_count=interaction_count)
    provider = ScriptedProvider(understanding_script())
    sink = ListSink()

    run(make_service(provider).answer_question(project_id, "Composite boards", sink))

    assert ESCAPE_HATCH_NOTE.strip() not in provider.requests[0].system_prompt
    assert sink.frames()[-1] == ("done", {})


# generate_estimate

def test_generate_estimate_stores_result(store, make_service, project_id):
    store.zip_codes[project_id] = "60614"
    provider = ScriptedProvider(estimate_script())
    sink = ListSink()

    result = run(make_service(provider).generate_estimate(project_id, sink))

    assert result.success
    assert "User zip code: 60614" in provider.requests[0].system_prompt
    assert [tool.name for tool in provider.requests[0].tools] == ["generate_estimate"]

    project = store.projects[project_id]
    assert project["status"] == "estimate_ready"
    assert project["scope_summary"] == "Here is your scope."
    assert project["cost_estimate"] == valid_cost_estimate()

    interaction = store.interactions[project_id][-1]
    assert interaction["type"] == "estimate_request"
    assert interaction["metadata"] == valid_cost_estimate()


def test_estimate_is_the_only_status_written(store, make_service, project_id):
    provider = ScriptedProvider(estimate_script())

    run(make_service(provider).generate_estimate(project_id, ListSink()))

    statuses = [fields["status"] for _, fields in store.updates if "status" in fields]
    assert statuses == [ProjectStatus.ESTIMATE_READY.value]
    assert [status.value for status in ProjectStatus] == statuses


def test_generate_estimate_unknown_zip_code(store, make_service, project_id):
    provider = ScriptedProvider(estimate_script())

    run(make_service(provider).generate_estimate(project_id, ListSink()))

    assert "User zip code: unknown" in provider.requests[0].system_prompt


def test_generate_estimate_retries_once_when_tool_missing(store, make_service, project_id):
    provider = ScriptedProvider(text_script("Narrative only."), estimate_script(text=""))
    sink = ListSink()

    result = run(make_service(provider).generate_estimate(project_id, sink))

    assert result.success
    assert provider.calls == 2
    assert store.projects[project_id]["scope_summary"] == "Narrative only."


def test_generate_estimate_missing_after_retry(store, make_service, project_id):
    provider = ScriptedProvider(text_script("First."), text_script("Second."))
    sink = ListSink()

    result = run(make_service(provider).generate_estimate(project_id, sink))

    assert not result.success
    assert provider.calls == 2
    assert sink.frames()[-1] == ("error", {"message": MISSING_ESTIMATE_MESSAGE, "retryable": True})
    assert store.updates == []
    assert store.interactions == {}


def test_generate_estimate_invalid_payload(store, make_service, project_id):
    provider = ScriptedProvider(estimate_script(valid_cost_estimate(confidence="certain")))
    sink = ListSink()

    result = run(make_service(provider).generate_estimate(project_id, sink))

    assert not result.success
    assert provider.calls == 1
    frames = sink.frames()
    assert ("done", {}) in frames
    assert frames[-1] == ("error", {"message": INVALID_ESTIMATE_MESSAGE, "retryable": True})
    assert store.updates == []


def test_generate_estimate_provider_failure(store, make_service, project_id, recording_sleep):
    overloaded = ProviderError("Overloaded", 529)
    provider = ScriptedProvider([overloaded], [overloaded], [overloaded])
    sink = ListSink()

    result = run(make_service(provider).generate_estimate(project_id, sink))

    assert not result.success
    assert recording_sleep.delays == [1.0, 2.0]
    assert sink.frames() == [("error", {"message": "Overloaded", "retryable": True})]
    assert store.updates == []


# analyze_photo

def test_initial_photo_analysis(make_service, store):
    provider = ScriptedProvider(text_script("Kitchen with oak cabinets."))
    sink = ListSink()

    result = run(make_service(provider).analyze_photo(AnalysisType.INITIAL, IMAGE, sink))

    request = provider.requests[0]
    assert result.success
    assert request.system_prompt == INITIAL_ANALYSIS_SYSTEM_PROMPT
    assert request.tools == ()
    assert request.messages[0].content[0] == IMAGE
    assert request.messages[0].content[1].text == "What project do you see here?"
    assert store.interactions == {}


def test_correction_photo_analysis(make_service):
    provider = ScriptedProvider(text_script("Got it, a bathroom."))

    run(make_service(provider).analyze_photo(
        AnalysisType.CORRECTION, IMAGE, ListSink(), correction_text="It's a bathroom, not a kitchen"
    ))

    text = provider.requests[0].messages[0].content[1].text
    assert text == 'What project do you see here? The user says: "It\'s a bathroom, not a kitchen"'


def test_additional_photo_updates_project(store, make_service, project_id):
    provider = ScriptedProvider(understanding_script(text="I can see the vanity is 36 inches.", understanding=50))

    result = run(make_service(provider).analyze_photo(AnalysisType.ADDITIONAL, IMAGE, ListSink(), project_id=project_id))

    assert result.success
    assert "Bathroom remodel" in provider.requests[0].system_prompt
    interaction = store.interactions[project_id][-1]
    assert interaction["type"] == "photo_analysis"
    assert interaction["user_input"] is None
    assert store.projects[project_id]["understanding_score"] == 50


def test_additional_photo_requires_project(make_service):
    with pytest.raises(ValueError):
        run(make_service(ScriptedProvider()).analyze_photo(AnalysisType.ADDITIONAL, IMAGE, ListSink()))


# analyze_portfolio

def portfolio_analysis(first, second):
    return {
        "sequenced_projects": [
            {"project_id": first, "priority_score": 80, "recommended_sequence": 1, "reasoning": "Leak risk"},
            {"project_id": second, "priority_score": 50, "recommended_sequence": 2, "reasoning": "Cosmetic"},
        ],
        "bundle_groups": [],
        "quick_wins": [second],
        "total_cost_range": {"low": 20000, "high": 30000},
        "optimization_summary": "Bathroom first.",
    }


def test_analyze_portfolio(store, make_service):
    first = store.add_project(title="Bathroom", understanding_score=80)
    second = store.add_project(title="Paint", understanding_score=90)
    analysis = portfolio_analysis(first, second)
    provider = ScriptedProvider(text_script("```json\n", json.dumps(analysis), "\n```"))

    result = run(make_service(provider).analyze_portfolio([first, second], "60614", ListSink()))

    assert result == analysis
    assert "Number of projects: 2" in provider.requests[0].system_prompt


def test_analyze_portfolio_rejects_foreign_ids(store, make_service):
    first = store.add_project(title="Bathroom")
    second = store.add_project(title="Paint")
    provider = ScriptedProvider(text_script(json.dumps(portfolio_analysis(first, "64b7f0c2a1b2c3d4e5f69999"))))

    with pytest.raises(ValidationFailed) as exc_info:
        run(make_service(provider).analyze_portfolio([first, second], None, ListSink()))

    assert exc_info.value.error == "sequenced_projects[1].project_id not in valid projects"


def test_analyze_portfolio_rejects_non_json(store, make_service):
    first = store.add_project(title="Bathroom")
    provider = ScriptedProvider(text_script("I think you should start with the bathroom."))

    with pytest.raises(ValidationFailed):
        run(make_service(provider).analyze_portfolio([first], None, ListSink()))


def test_analyze_portfolio_unknown_project(make_service):
    with pytest.raises(ContextNotFound):
        run(make_service(ScriptedProvider()).analyze_portfolio(["64b7f0c2a1b2c3d4e5f60001"], None, ListSink()))


def test_strip_code_fence():
    assert _strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert _strip_code_fence('  {"a": 1}  ') == '{"a": 1}'
