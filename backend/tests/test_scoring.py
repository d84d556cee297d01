import json

import pytest
from conftest import FakeLLM, make_settings

from dealscout.services.llm.types import LLMStage
from dealscout.services.scoring import (
    PARSE_FAILURE_REASON,
    CandidateScorer,
    build_scoring_prompt,
    parse_score_response,
)
from dealscout.services.types import Candidate, SearchCriteria

CRITERIA = SearchCriteria(query="medical devices", industry="Healthcare", geographicFocus="United States")


class _FakeIPEvaluator:
    def __init__(self, answer):
        self.answer = answer
        self.asked = []

    async def has_ip_upside(self, name):
        self.asked.append(name)
        return self.answer


def _score_json(**fields):
    payload = {
        "score": 7,
        "confidence": "High",
        "reasoning": "Strong fit",
        "estimatedRevenue": "$25M",
        "industry": "Medical Devices",
        "geographicFocus": "Ohio",
        "industryMatch": True,
        "ownershipType": "Founder-Led",
        "ownershipNotes": "Founder is CEO",
    }
    payload.update(fields)
    return "```json\n" + json.dumps(payload) + "\n```"


def test_parse_score_response_reads_fields():
    result = parse_score_response(_score_json(), CRITERIA)
    assert result.score == 7
    assert result.confidence == "High"
    assert result.estimated_revenue == "$25M"
    assert result.industry_match is True
    assert result.ownership_type == "Founder-Led"


def test_parse_score_response_falls_back_on_garbage():
    result = parse_score_response("I cannot score this company.", CRITERIA)
    assert result.score == 5
    assert result.confidence == "Low"
    assert result.reasoning == PARSE_FAILURE_REASON
    assert result.estimated_revenue == ""
    assert result.industry_match is False
    assert result.ownership_type == "Unknown"
    assert result.industry == "Healthcare"
    assert result.geographic_focus == "United States"


def test_parse_score_response_defaults_missing_fields():
    result = parse_score_response('{"reasoning": "thin data"}', CRITERIA)
    assert result.score == 5
    assert result.confidence == "Low"
    assert result.industry == "Healthcare"
    assert result.ownership_type == "Unknown"


@pytest.mark.parametrize(
    "raw, expected",
    [("high", "High"), (" MEDIUM ", "Medium"), ("Low", "Low"), ("very high", "Low"), (None, "Low"), (3, "Low")],
)
def test_parse_score_response_normalizes_confidence(raw, expected):
    result = parse_score_response(_score_json(confidence=raw), CRITERIA)
    assert result.confidence == expected


def test_scoring_prompt_mentions_company_and_criteria():
    prompt = build_scoring_prompt(Candidate(name="Acme", url="https://acme.test", text="Makes stents"), CRITERIA)
    assert "Company: Acme" in prompt
    assert "- Industry: Healthcare" in prompt
    assert "- Revenue: Any" in prompt
    assert "- Strategy: buy-side" in prompt


async def test_score_all_drops_candidates_whose_call_fails():
    llm = FakeLLM([_score_json(score=8), RuntimeError("boom"), "not json"])
    scorer = CandidateScorer(llm=llm, ip_evaluator=_FakeIPEvaluator(False), settings=make_settings())
    candidates = [Candidate(name=n, url=f"https://{n}.test") for n in ("a", "b", "c")]

    scored = await scorer.score_all(candidates, CRITERIA)

    assert [c.name for c in scored] == ["a", "c"]
    assert scored[0].score == 8
    assert scored[1].reasoning == PARSE_FAILURE_REASON
    assert all(r.stage == LLMStage.candidate_scoring for r in llm.requests)


async def test_apply_filters_thresholds_and_ip_boost():
    evaluator = _FakeIPEvaluator(True)
    scorer = CandidateScorer(llm=FakeLLM([]), ip_evaluator=evaluator, settings=make_settings())
    candidates = [
        Candidate(name="low-score", url="", score=2, estimated_revenue="$20M"),
        Candidate(name="too-big", url="", score=9, estimated_revenue="$200M"),
        Candidate(name="small-ip", url="", score=6, estimated_revenue="$4M"),
        Candidate(name="unknown-rev", url="", score=6, estimated_revenue=""),
        Candidate(name="mid", url="", score=7, estimated_revenue="$40M"),
    ]

    kept = await scorer.apply_filters(candidates)

    assert [c.name for c in kept] == ["small-ip", "unknown-rev", "mid"]
    assert kept[0].ip_upside is True
    assert kept[0].score == 7
    assert evaluator.asked == ["small-ip"]


async def test_apply_filters_keeps_small_company_without_boost():
    scorer = CandidateScorer(llm=FakeLLM([]), ip_evaluator=_FakeIPEvaluator(False), settings=make_settings())
    kept = await scorer.apply_filters([Candidate(name="tiny", url="", score=5, estimated_revenue="$2M")])
    assert kept[0].score == 5
    assert kept[0].ip_upside is False
