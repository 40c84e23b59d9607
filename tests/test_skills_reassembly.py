import pytest

from agents.skills_sorting import parse_sort_result, reassemble_skill_groups
from core.critique_loop import OutputParseError
from core.models import Skill, SkillGroup, SkillsSortResult


ORIGINAL = [
    SkillGroup(title="Backend", skills=[Skill(text="Node.js", highlight=True), Skill(text="Go", highlight=False)]),
    SkillGroup(title="Frontend", skills=[Skill(text="React")]),
    SkillGroup(title="Soft skills", skills=[Skill(text="Mentoring")]),
]


def test_groups_follow_group_order_and_keep_highlights():
    result = SkillsSortResult(
        group_order=["Frontend", "Backend"],
        skill_order={"Frontend": ["React"], "Backend": ["Go", "Node.js", "Kubernetes"]},
    )
    groups = reassemble_skill_groups(result, ORIGINAL)
    assert [g.title for g in groups] == ["Frontend", "Backend"]
    backend = groups[1]
    assert [(s.text, s.highlight) for s in backend.skills] == [
        ("Go", False),
        ("Node.js", True),
        ("Kubernetes", None),
    ]


def test_renamed_group_starts_without_highlights():
    result = SkillsSortResult(group_order=["Server"], skill_order={"Server": ["Node.js"]})
    groups = reassemble_skill_groups(result, ORIGINAL)
    assert groups == [SkillGroup(title="Server", skills=[Skill(text="Node.js", highlight=None)])]


def test_omitted_groups_are_not_restored():
    result = SkillsSortResult(group_order=["Backend"], skill_order={"Backend": ["Node.js"]})
    titles = [g.title for g in reassemble_skill_groups(result, ORIGINAL)]
    assert titles == ["Backend"]


def test_group_without_skill_order_entry_is_empty():
    result = SkillsSortResult(group_order=["Frontend"], skill_order={})
    groups = reassemble_skill_groups(result, ORIGINAL)
    assert groups[0].skills == []


def test_highlight_match_is_scoped_to_the_same_group():
    result = SkillsSortResult(group_order=["Frontend"], skill_order={"Frontend": ["Node.js"]})
    groups = reassemble_skill_groups(result, ORIGINAL)
    assert groups[0].skills[0].highlight is None


def test_parse_sort_result_accepts_camel_case_and_fences():
    raw = '```json\n{"groupOrder": ["A"], "skillOrder": {"A": ["x", "y"]}}\n```'
    result = parse_sort_result(raw)
    assert result.group_order == ["A"]
    assert result.skill_order == {"A": ["x", "y"]}


@pytest.mark.parametrize(
    "raw",
    [
        '{"groupOrder": [], "skillOrder": {}}',
        '{"groupOrder": "A"}',
        "not json",
    ],
)
def test_parse_sort_result_rejects_bad_payloads(raw):
    with pytest.raises(OutputParseError):
        parse_sort_result(raw)
