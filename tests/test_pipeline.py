import asyncio

import pytest

from agents import StageError
from core.models import PipelineRequest, Profile, ProgressEvent, Skill, SkillGroup
from core.pipeline import (
    COMPLETE_MESSAGE,
    COVER_LETTER_MESSAGE,
    PHASE_1_MESSAGE,
    PHASE_2A_MESSAGE,
    PHASE_2B_MESSAGE,
    iter_pipeline,
    run_pipeline,
    run_request,
    total_steps_for,
)
from tests.fakes import JD_TEXT, REFINED_JD, RoutedFakeLLM, SlowLLM, pipeline_routes

PHASES = {PHASE_1_MESSAGE, PHASE_2A_MESSAGE, PHASE_2B_MESSAGE, COVER_LETTER_MESSAGE, COMPLETE_MESSAGE}


def _announcements(events: list[ProgressEvent]) -> list[tuple[int, str]]:
    return [
        (e.step_index, e.message)
        for e in events
        if e.message in PHASES or e.message.startswith("Tailoring ")
    ]


def test_total_steps_counts_work_entries(profile):
    assert total_steps_for(profile) == 9
    assert total_steps_for(Profile()) == 7


@pytest.mark.asyncio
async def test_full_run_produces_result(agent_config, policy, profile):
    llm = RoutedFakeLLM(pipeline_routes())
    result = await run_pipeline(profile, JD_TEXT, agent_config, llm=llm, policy=policy)

    assert result.refined_job_description == REFINED_JD
    assert result.extracted_skills == "React, Node.js, Kubernetes"
    assert result.job_title == "Senior Platform Engineer"
    assert result.summary == "Platform engineer shipping React and Node.js products."
    assert result.cover_letter == "Dear hiring team, I build platforms."

    acme, globex = result.tailored_work_history
    assert acme.organization == "Acme"
    assert acme.description == "Tailored description."
    assert acme.technologies == ["React", "Node.js"]
    assert globex.organization == "Globex"
    assert globex.technologies is None
    assert [a.text for a in globex.key_achievements] == ["Tailored win"]

    assert [g.title for g in result.sorted_skill_groups] == ["Frontend", "Backend"]
    backend = result.sorted_skill_groups[1]
    assert [(s.text, s.highlight) for s in backend.skills] == [("Node.js", True), ("Kubernetes", None)]


@pytest.mark.asyncio
async def test_keywords_extracted_once_for_all_entries(agent_config, policy, profile):
    llm = RoutedFakeLLM(pipeline_routes())
    await run_pipeline(profile, JD_TEXT, agent_config, llm=llm, policy=policy)
    assert llm.count("ATS keyword strategist") == 1
    assert llm.count("resume experience writer") == 2
    # Only the Acme entry lists technologies.
    assert llm.count("Tech Stack Optimization") == 1


@pytest.mark.asyncio
async def test_stages_see_refined_jd_and_tailored_profile(agent_config, policy, profile):
    llm = RoutedFakeLLM(pipeline_routes())
    await run_pipeline(profile, JD_TEXT, agent_config, llm=llm, policy=policy)
    assert JD_TEXT in llm.prompts("Skills Extractor")[0]
    assert REFINED_JD in llm.prompts("ATS keyword strategist")[0]
    cover_prompt = llm.prompts("Professional Cover Letter Writer")[0]
    assert "Current position: Senior Platform Engineer" in cover_prompt
    assert "Tailored win" in cover_prompt
    assert "Platform engineer shipping React" in cover_prompt


@pytest.mark.asyncio
async def test_progress_announcements_and_terminal_event(agent_config, policy, profile):
    events: list[ProgressEvent] = []
    llm = RoutedFakeLLM(pipeline_routes())
    result = await run_pipeline(profile, JD_TEXT, agent_config, events.append, llm=llm, policy=policy)

    assert _announcements(events) == [
        (1, PHASE_1_MESSAGE),
        (2, PHASE_2A_MESSAGE),
        (3, PHASE_2B_MESSAGE),
        (5, "Tailoring Acme experience (1/2)..."),
        (6, "Tailoring Globex experience (2/2)..."),
        (8, COVER_LETTER_MESSAGE),
        (9, COMPLETE_MESSAGE),
    ]
    assert all(e.total_steps == 9 for e in events)
    assert all(1 <= e.step_index <= 9 for e in events)

    done = [e for e in events if e.done]
    assert len(done) == 1
    assert events[-1] is done[0]
    assert done[0].partial_result == result.model_dump()


@pytest.mark.asyncio
async def test_partial_results_accumulate(agent_config, policy, profile):
    events: list[ProgressEvent] = []
    llm = RoutedFakeLLM(pipeline_routes())
    await run_pipeline(profile, JD_TEXT, agent_config, events.append, llm=llm, policy=policy)

    phase_2a = next(e for e in events if e.message == PHASE_2A_MESSAGE)
    assert phase_2a.partial_result["refined_job_description"] == REFINED_JD
    assert phase_2a.partial_result["extracted_skills"] == "React, Node.js, Kubernetes"

    globex = next(e for e in events if e.message.startswith("Tailoring Globex"))
    history = globex.partial_result["tailored_work_history"]
    assert history[0]["description"] == "Tailored description."
    assert history[1]["description"] == "Maintained APIs."

    cover = next(e for e in events if e.message == COVER_LETTER_MESSAGE)
    assert cover.partial_result["job_title"] == "Senior Platform Engineer"
    assert "summary" in cover.partial_result


@pytest.mark.asyncio
async def test_stage_progress_is_forwarded_under_its_step(agent_config, policy, profile):
    events: list[ProgressEvent] = []
    llm = RoutedFakeLLM(pipeline_routes())
    await run_pipeline(profile, JD_TEXT, agent_config, events.append, llm=llm, policy=policy)
    by_step = {}
    for e in events:
        by_step.setdefault(e.step_index, []).append(e.message)
    assert any("Improving JD" in m for m in by_step[1])
    assert any("Writing summary" in m for m in by_step[3])
    assert any("Scribe" in m for m in by_step[4])
    assert any("Tailoring Acme..." in m for m in by_step[5])
    # Stage completion messages never leak into the run stream.
    assert not any(m == "Job description refined." for m in by_step[1])


@pytest.mark.asyncio
async def test_empty_work_history_skips_tailoring(agent_config, policy):
    profile = Profile(name="New Grad", skills=[SkillGroup(title="Frontend", skills=[Skill(text="React")])])
    events: list[ProgressEvent] = []
    llm = RoutedFakeLLM(pipeline_routes())
    result = await run_pipeline(profile, JD_TEXT, agent_config, events.append, llm=llm, policy=policy)
    assert result.tailored_work_history == []
    assert llm.count("experience alignment analyzer") == 0
    assert events[-1].step_index == 7
    assert (6, COVER_LETTER_MESSAGE) in _announcements(events)


@pytest.mark.asyncio
async def test_stage_failure_fails_the_run(agent_config, policy, profile):
    events: list[ProgressEvent] = []
    routes = pipeline_routes()
    routes["Master Resume Reviewer"] = ConnectionError("backend down")
    llm = RoutedFakeLLM(routes)
    with pytest.raises(ConnectionError):
        await run_pipeline(profile, JD_TEXT, agent_config, events.append, llm=llm, policy=policy)
    assert not any(e.done for e in events)


@pytest.mark.asyncio
async def test_blank_job_description_raises_stage_error(agent_config, policy, profile):
    llm = RoutedFakeLLM(pipeline_routes())
    with pytest.raises(StageError):
        await run_pipeline(profile, "   ", agent_config, llm=llm, policy=policy)
    assert llm.calls == []


@pytest.mark.asyncio
async def test_run_request(agent_config, policy, profile):
    request = PipelineRequest(profile=profile, job_description=JD_TEXT, agent_config=agent_config)
    result = await run_request(request, llm=RoutedFakeLLM(pipeline_routes()), policy=policy)
    assert result.job_title == "Senior Platform Engineer"


@pytest.mark.asyncio
async def test_iter_pipeline_streams_events_then_exposes_result(agent_config, policy, profile):
    llm = RoutedFakeLLM(pipeline_routes())
    async with iter_pipeline(profile, JD_TEXT, agent_config, llm=llm, policy=policy) as events:
        seen = [event async for event in events]
    assert seen[0].message == PHASE_1_MESSAGE
    assert seen[-1].done
    assert events.result is not None
    assert seen[-1].partial_result == events.result.model_dump()


@pytest.mark.asyncio
async def test_iter_pipeline_reraises_stage_failure(agent_config, policy, profile):
    routes = pipeline_routes()
    routes["Professional JD Refiner"] = ConnectionError("backend down")
    llm = RoutedFakeLLM(routes)
    with pytest.raises(ConnectionError):
        async with iter_pipeline(profile, JD_TEXT, agent_config, llm=llm, policy=policy) as events:
            async for _ in events:
                pass


@pytest.mark.asyncio
async def test_breaking_out_of_iter_pipeline_stops_later_stages(agent_config, policy, profile):
    llm = SlowLLM(pipeline_routes(), delays={"JD Quality Critic": 0.05})
    async for event in iter_pipeline(profile, JD_TEXT, agent_config, llm=llm, policy=policy):
        assert event.message == PHASE_1_MESSAGE
        break
    await asyncio.sleep(0.2)
    calls_after_break = len(llm.calls)
    await asyncio.sleep(0.2)
    assert len(llm.calls) == calls_after_break
    assert llm.count("JD Quality Critic") == 0
    assert llm.count("Professional Cover Letter Writer") == 0


@pytest.mark.asyncio
async def test_camel_case_profile_is_tailored(agent_config, policy, profile):
    camel = Profile.model_validate(
        {
            "name": profile.name,
            "workExperience": [
                {"organization": "Acme", "position": "Engineer", "keyAchievements": [{"text": "Won"}]}
            ],
            "skills": [{"title": "Backend", "skills": [{"text": "Node.js"}, {"text": "React"}]}],
        }
    )
    llm = RoutedFakeLLM(pipeline_routes())
    result = await run_pipeline(camel, JD_TEXT, agent_config, llm=llm, policy=policy)
    assert [w.organization for w in result.tailored_work_history] == ["Acme"]
    assert llm.count("resume experience writer") == 1
