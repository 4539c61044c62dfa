"""
Tests for plan generation against a mocked Vertex AI endpoint.
"""

import json
import re

import httpx
import pytest

from slotwise.services.errors import CredentialMalformed, PlanGenerationError, ProviderUnavailable
from slotwise.services.planning.planning_client import PLANNER_SCHEMA, PlanningClient, build_prompt
from slotwise.services.planning.service_assertion import ServicePrincipalCredential

GENERATE_URL = re.compile(
    r"https://us-central1-aiplatform\.googleapis\.com/v1/projects/planner-project"
    r"/locations/us-central1/publishers/google/models/.+:generateContent"
)

PLAN = {
    "goal": {
        "title": "Run a half marathon",
        "targetDate": "2030-04-01",
        "successCriteria": ["Finish under 2 hours"],
    },
    "tasks": [
        {"id": "base", "title": "Base mileage", "estimatedMinutes": 240},
        {
            "id": "long",
            "title": "Long runs",
            "estimatedMinutes": 180,
            "dependencies": ["base"],
            "preferredWindows": [{"daysOfWeek": ["SAT"], "startLocal": "07:00", "endLocal": "10:00"}],
        },
    ],
}


class FakeSigner:
    def __init__(self):
        self.credential = ServicePrincipalCredential(
            client_email="planner@planner-project.iam.gserviceaccount.com",
            private_key="unused",
            project_id="planner-project",
        )
        self.token_requests = 0

    async def get_access_token(self) -> str:
        self.token_requests += 1
        return "service-token"


def _candidate(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


@pytest.fixture
def signer():
    return FakeSigner()


@pytest.fixture
def planner(signer):
    return PlanningClient(signer_factory=lambda: signer)


@pytest.mark.asyncio
async def test_generate_plan_parses_schema_constrained_output(planner, signer, httpx_mock):
    httpx_mock.add_response(method="POST", url=GENERATE_URL, json=_candidate(json.dumps(PLAN)))

    plan = await planner.generate_plan(
        "Run a half marathon in spring", constraints={"hoursPerWeek": 5}, profile={"tz": "UTC"}
    )

    assert plan.goal.title == "Run a half marathon"
    assert plan.goal.success_criteria == ["Finish under 2 hours"]
    assert [t.id for t in plan.tasks] == ["base", "long"]
    assert plan.tasks[1].dependencies == ["base"]

    request = httpx_mock.get_requests()[0]
    assert request.headers["Authorization"] == "Bearer service-token"
    body = json.loads(request.content)
    assert body["generationConfig"]["responseMimeType"] == "application/json"
    assert body["generationConfig"]["responseSchema"] == PLANNER_SCHEMA
    assert "Run a half marathon in spring" in body["contents"][0]["parts"][0]["text"]


@pytest.mark.asyncio
async def test_non_json_content_is_generation_error(planner, httpx_mock):
    httpx_mock.add_response(method="POST", url=GENERATE_URL, json=_candidate("Sure! Here's a plan"))

    with pytest.raises(PlanGenerationError):
        await planner.generate_plan("Learn piano")


@pytest.mark.asyncio
async def test_plan_missing_required_fields_is_generation_error(planner, httpx_mock):
    httpx_mock.add_response(
        method="POST",
        url=GENERATE_URL,
        json=_candidate(json.dumps({"goal": {"title": "x"}, "tasks": [{"id": "t"}]})),
    )

    with pytest.raises(PlanGenerationError):
        await planner.generate_plan("Learn piano")


@pytest.mark.asyncio
async def test_no_candidates_is_generation_error(planner, httpx_mock):
    httpx_mock.add_response(method="POST", url=GENERATE_URL, json={"candidates": []})

    with pytest.raises(PlanGenerationError):
        await planner.generate_plan("Learn piano")


@pytest.mark.asyncio
async def test_endpoint_error_is_provider_unavailable(planner, httpx_mock):
    httpx_mock.add_response(method="POST", url=GENERATE_URL, status_code=429, json={})

    with pytest.raises(ProviderUnavailable) as exc:
        await planner.generate_plan("Learn piano")

    assert exc.value.status_code == 429


@pytest.mark.asyncio
async def test_endpoint_timeout_is_flagged(planner, httpx_mock):
    httpx_mock.add_exception(httpx.ReadTimeout("timed out"), method="POST", url=GENERATE_URL)

    with pytest.raises(ProviderUnavailable) as exc:
        await planner.generate_plan("Learn piano")

    assert exc.value.timed_out is True


@pytest.mark.asyncio
async def test_malformed_credential_stops_before_network(httpx_mock):
    def broken_signer():
        raise CredentialMalformed("Service account key is not valid JSON")

    planner = PlanningClient(signer_factory=broken_signer)

    with pytest.raises(CredentialMalformed):
        await planner.generate_plan("Learn piano")

    assert httpx_mock.get_requests() == []


def test_prompt_includes_context():
    prompt = build_prompt("Learn piano", {"budget": 0}, "Has a keyboard", {"tz": "Europe/Paris"})

    assert '"tz": "Europe/Paris"' in prompt
    assert '"budget": 0' in prompt
    assert "Has a keyboard" in prompt
    assert prompt.endswith("Return only JSON that matches the provided schema.")
