"""
Planning client: turns a user's intent into a structured plan (goal + tasks)
with a Vertex AI generateContent call constrained by a JSON response schema.
"""

import json
from collections.abc import Callable
from typing import Any

import httpx
from pydantic import ValidationError

from slotwise.config import settings
from slotwise.infrastructure.observability.logging import get_logger
from slotwise.models.domain.scheduling_domain import Plan
from slotwise.services.errors import PlanGenerationError, ProviderUnavailable
from slotwise.services.planning.service_assertion import (
    ServiceAssertionSigner,
    get_service_signer,
)

logger = get_logger(__name__)

GENERATION_TEMPERATURE = 0.3

_WINDOW_SCHEMA = {
    "type": "object",
    "properties": {
        "daysOfWeek": {"type": "array", "items": {"type": "string"}},
        "startLocal": {"type": "string"},
        "endLocal": {"type": "string"},
    },
}

PLANNER_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "goal": {
            "type": "object",
            "properties": {
                "title": {"type": "string"},
                "description": {"type": "string"},
                "targetDate": {"type": "string"},
                "successCriteria": {"type": "array", "items": {"type": "string"}},
            },
            "required": ["title", "targetDate"],
        },
        "tasks": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "id": {"type": "string"},
                    "title": {"type": "string"},
                    "notes": {"type": "string"},
                    "estimatedMinutes": {"type": "integer"},
                    "dueDate": {"type": "string"},
                    "earliestStartDate": {"type": "string"},
                    "dependencies": {"type": "array", "items": {"type": "string"}},
                    "preferredWindows": {
                        "type": "array",
                        "items": {**_WINDOW_SCHEMA, "required": ["daysOfWeek", "startLocal", "endLocal"]},
                    },
                    "avoidWindows": {"type": "array", "items": _WINDOW_SCHEMA},
                    "sessionMinMinutes": {"type": "integer"},
                    "sessionMaxMinutes": {"type": "integer"},
                    "allowSplitting": {"type": "boolean"},
                    "priority": {"type": "string"},
                },
                "required": ["id", "title", "estimatedMinutes"],
            },
        },
    },
    "required": ["goal", "tasks"],
}


def build_prompt(
    intent: str,
    constraints: dict[str, Any] | None,
    chat_summary: str | None,
    profile: dict[str, Any] | None,
) -> str:
    return (
        "You are an expert planner. Create a tailored plan.\n"
        f"User profile (JSON): {json.dumps(profile or {})}\n"
        f"Constraints (JSON): {json.dumps(constraints or {})}\n"
        f"Chat summary: {chat_summary or ''}\n"
        f"Intent: {intent}\n"
        "Return only JSON that matches the provided schema."
    )


class PlanningClient:
    """Structured plan generation on Vertex AI, authenticated as a service principal."""

    def __init__(self, signer_factory: Callable[[], ServiceAssertionSigner] = get_service_signer):
        self._signer_factory = signer_factory

    def _endpoint(self, signer: ServiceAssertionSigner) -> str:
        location = settings.GCP_LOCATION
        project = settings.GCP_PROJECT_ID or signer.credential.project_id
        if not project:
            raise PlanGenerationError("GCP project id is not configured", recoverable=False)
        return (
            f"https://{location}-aiplatform.googleapis.com/v1/projects/{project}"
            f"/locations/{location}/publishers/google/models/{settings.GEMINI_MODEL}:generateContent"
        )

    async def generate_plan(
        self,
        intent: str,
        constraints: dict[str, Any] | None = None,
        chat_summary: str | None = None,
        profile: dict[str, Any] | None = None,
    ) -> Plan:
        """
        Generate a plan for the intent.

        Raises:
            CredentialMalformed / AssertionExchangeFailed: Service auth failed
            ProviderUnavailable: Model endpoint failed or timed out
            PlanGenerationError: Response carried no usable plan
        """
        signer = self._signer_factory()
        url = self._endpoint(signer)
        access_token = await signer.get_access_token()

        body = {
            "contents": [
                {"role": "user", "parts": [{"text": build_prompt(intent, constraints, chat_summary, profile)}]}
            ],
            "generationConfig": {
                "temperature": GENERATION_TEMPERATURE,
                "candidateCount": 1,
                "responseMimeType": "application/json",
                "responseSchema": PLANNER_SCHEMA,
            },
        }

        logger.info("Requesting plan generation", model=settings.GEMINI_MODEL, intent_length=len(intent))

        try:
            async with httpx.AsyncClient(timeout=settings.PROVIDER_TIMEOUT_SECONDS) as client:
                response = await client.post(
                    url, json=body, headers={"Authorization": f"Bearer {access_token}"}
                )
        except httpx.TimeoutException as e:
            logger.error("Plan generation timed out")
            raise ProviderUnavailable(
                "Plan generation timed out", operation="generate_plan", timed_out=True
            ) from e
        except httpx.RequestError as e:
            logger.error("Network error during plan generation", error=str(e))
            raise ProviderUnavailable(
                f"Plan generation failed: {e}", operation="generate_plan"
            ) from e

        if not response.is_success:
            logger.error(
                "Plan generation failed",
                status_code=response.status_code,
                response_text=response.text[:200],
            )
            raise ProviderUnavailable(
                f"Planning service error (HTTP {response.status_code})",
                operation="generate_plan",
                status_code=response.status_code,
            )

        plan = self._parse_plan(response)
        logger.info("Plan generated", goal_title=plan.goal.title, task_count=len(plan.tasks))
        return plan

    def _parse_plan(self, response: httpx.Response) -> Plan:
        try:
            text = response.json()["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise PlanGenerationError("Planning service returned no content") from e

        try:
            return Plan.model_validate(json.loads(text))
        except (TypeError, ValueError, ValidationError) as e:
            logger.error("Generated plan failed validation", error=str(e)[:300])
            raise PlanGenerationError(f"Generated plan is not usable: {e}") from e


# Singleton instance for application use
planning_client = PlanningClient()
