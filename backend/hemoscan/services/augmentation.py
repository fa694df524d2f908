"""AI augmentation of a deterministic diagnosis.

The pipeline consumes augmentation through the AugmentationPort protocol:
given a (sample, diagnosis) pair, produce a short clinical summary and a
four-meal diet plan, or fail with AugmentationUnavailableError.

OpenAIAugmentationClient implements the port with the OpenAI Responses API
and Pydantic structured outputs. DisabledAugmentationClient always fails,
routing every analysis to the fallback content, and is used when no API key
is configured.
"""

import asyncio
import logging
import re
import time
from typing import Any, Protocol

from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError

from hemoscan.config import settings
from hemoscan.schemas.cbc import CBCSample
from hemoscan.schemas.diagnosis import Augmentation, Diagnosis, DietMeal, Severity

logger = logging.getLogger(__name__)

_SYSTEM_PROMPT = (
    "You are a clinical hematology assistant writing for patients. "
    "Explain CBC screening results plainly, never contradict the supplied "
    "classification, and never prescribe medication or doses."
)

_SEVERITY_INSTRUCTIONS: dict[Severity, str] = {
    Severity.SEVERE: (
        "- The patient has SEVERE anemia (Hb: {hb} g/dL).\n"
        "- The diet plan MUST be high-potency, focusing on maximum iron bioavailability "
        "(heme-iron), vitamin C for absorption, and immediate nutritional support.\n"
        "- Emphasize medical consultation as the top priority alongside the diet."
    ),
    Severity.MODERATE: (
        "- The patient has MODERATE anemia (Hb: {hb} g/dL).\n"
        "- Focus on a consistent, iron-dense therapeutic diet to raise hemoglobin levels "
        "steadily over the next 30-60 days."
    ),
    Severity.MILD: (
        "- The patient has MILD anemia (Hb: {hb} g/dL).\n"
        "- Provide a supportive, balanced diet to correct minor deficiencies and prevent "
        "further drops."
    ),
    Severity.NORMAL: (
        "- The patient is HEALTHY (Hb: {hb} g/dL).\n"
        "- DO NOT provide a recovery diet.\n"
        '- Provide a "Wellness & Maintenance" plan focusing on long-term vitality.'
    ),
}

_FALLBACK_DIET: tuple[tuple[str, tuple[str, ...]], ...] = (
    (
        "Nutrition Tip",
        (
            "Increase intake of red meats, legumes, and dark leafy greens.",
            "Pair iron-rich foods with Vitamin C for better absorption.",
        ),
    ),
    ("Breakfast Idea", ("Iron-fortified oatmeal with strawberries.",)),
    ("Lunch Idea", ("Lentil soup with a squeeze of lemon.",)),
    ("Dinner Idea", ("Grilled spinach and chicken breast.",)),
)

_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")


class AugmentationUnavailableError(RuntimeError):
    """Augmentation failed: transport, timeout, schema or parse error."""


class AugmentationPort(Protocol):
    """Capability consumed by the analysis pipeline."""

    async def augment(self, sample: CBCSample, diagnosis: Diagnosis) -> Augmentation: ...


class DietMealPayload(BaseModel):
    """Structured-output schema for one meal."""

    meal: str
    suggestions: list[str]


class AugmentationPayload(BaseModel):
    """Structured-output schema requested from the model."""

    guidance: str
    diet: list[DietMealPayload]


def fallback_guidance(severity: Severity) -> str:
    """Canned guidance used when AI augmentation is unavailable."""
    return (
        "AI Analysis is temporarily unavailable. Based on standard clinical guidelines for "
        f"{severity.value.lower()} anemia, you should focus on iron-rich foods and consult "
        "a physician."
    )


def fallback_diet_plan() -> list[DietMeal]:
    """The fixed generic four-item diet plan."""
    return [DietMeal(meal=meal, suggestions=list(suggestions)) for meal, suggestions in _FALLBACK_DIET]


def fallback_augmentation(severity: Severity) -> Augmentation:
    return Augmentation(guidance=fallback_guidance(severity), diet_plan=fallback_diet_plan())


def build_augmentation_prompt(sample: CBCSample, diagnosis: Diagnosis) -> str:
    """Build the user prompt for a (sample, diagnosis) pair."""
    status = _SEVERITY_INSTRUCTIONS[diagnosis.severity].format(hb=f"{sample.hemoglobin:g}")
    return (
        "Context: Clinical hematology report analysis.\n"
        f"Patient: {sample.age}y {sample.sex.value}, Hb: {sample.hemoglobin:g} g/dL, "
        f"RBC: {sample.rbc_count:g}, MCV: {sample.mcv:g}, MCHC: {sample.mchc:g}, "
        f"RDW: {sample.rdw:g}, Morph: {diagnosis.morphology_type}.\n"
        f"Classification: severity={diagnosis.severity.value}, risk={diagnosis.risk_level.value}.\n"
        "\n"
        f"Status:\n{status}\n"
        "\n"
        "Task:\n"
        "1. guidance: Provide a 2-3 sentence clinical summary explaining why their specific "
        "CBC markers lead to this result.\n"
        "2. diet: Provide 4 meals (Breakfast, Lunch, Dinner, Snack/Tip), each with a list "
        "of suggestions."
    )


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence from model output."""
    return _CODE_FENCE_RE.sub("", text.strip())


def coerce_augmentation(raw: Any) -> Augmentation:
    """Validate a port result into an Augmentation.

    Accepts an Augmentation (re-validated), a structured payload, a mapping,
    or a (guidance, diet_plan) pair.

    Raises:
        AugmentationUnavailableError: If the shape is malformed.
    """
    if isinstance(raw, AugmentationPayload):
        data: Any = {"guidance": raw.guidance, "diet_plan": [m.model_dump() for m in raw.diet]}
    elif isinstance(raw, BaseModel):
        data = raw.model_dump()
    elif isinstance(raw, tuple) and len(raw) == 2:
        data = {"guidance": raw[0], "diet_plan": raw[1]}
    else:
        data = raw

    try:
        augmentation = Augmentation.model_validate(data)
    except ValidationError as e:
        raise AugmentationUnavailableError(f"malformed augmentation payload: {e}") from e

    if not augmentation.guidance.strip():
        raise AugmentationUnavailableError("malformed augmentation payload: blank guidance")
    for meal in augmentation.diet_plan:
        if not meal.meal.strip() or not any(s.strip() for s in meal.suggestions):
            raise AugmentationUnavailableError(
                f"malformed augmentation payload: empty meal {meal.meal!r}"
            )
    return augmentation


class OpenAIAugmentationClient:
    """Augmentation port backed by the OpenAI Responses API.

    Example:
        client = OpenAIAugmentationClient()
        augmentation = await client.augment(sample, diagnosis)
        print(augmentation.guidance)
    """

    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        model: str | None = None,
        temperature: float | None = None,
        timeout_seconds: float | None = None,
    ):
        """Initialize the client.

        Args:
            client: Optional pre-configured AsyncOpenAI client (for testing).
                   If not provided, creates one from settings.
            model: Model name. Defaults to settings.augmentation_model.
            temperature: Sampling temperature.
            timeout_seconds: Bounded wait for a single call.

        Raises:
            ValueError: If no client provided and OPENAI_API_KEY is not configured.
        """
        if client is not None:
            self._client = client
        else:
            if not settings.openai_api_key:
                raise ValueError(
                    "OPENAI_API_KEY environment variable is required. "
                    "Set it in your .env file or environment."
                )
            self._client = AsyncOpenAI(api_key=settings.openai_api_key)

        self._model = model or settings.augmentation_model
        self._temperature = (
            temperature if temperature is not None else settings.augmentation_temperature
        )
        self._timeout = (
            timeout_seconds if timeout_seconds is not None else settings.augmentation_timeout_seconds
        )

    async def close(self) -> None:
        """Close the OpenAI client connection."""
        await self._client.close()

    async def augment(self, sample: CBCSample, diagnosis: Diagnosis) -> Augmentation:
        """Request guidance and a diet plan for a classified sample.

        Raises:
            AugmentationUnavailableError: On any transport, timeout, schema
                or parse failure.
        """
        t0 = time.perf_counter()
        kwargs: dict[str, Any] = {
            "model": self._model,
            "input": [
                {"role": "system", "content": _SYSTEM_PROMPT},
                {"role": "user", "content": build_augmentation_prompt(sample, diagnosis)},
            ],
            "text_format": AugmentationPayload,
            "temperature": self._temperature,
        }

        try:
            response = await asyncio.wait_for(
                self._client.responses.parse(**kwargs), timeout=self._timeout
            )
        except asyncio.TimeoutError as e:
            raise AugmentationUnavailableError(
                f"augmentation timed out after {self._timeout:.0f}s"
            ) from e
        except Exception as e:
            raise AugmentationUnavailableError(f"augmentation request failed: {e}") from e

        payload = getattr(response, "output_parsed", None)
        if payload is None:
            # Structured parsing failed; fall back to the raw text
            logger.warning("Structured parsing returned None, attempting raw text parse")
            raw_output = getattr(response, "output_text", None)
            if not raw_output:
                raise AugmentationUnavailableError(
                    "augmentation response had neither structured output nor text"
                )
            try:
                payload = AugmentationPayload.model_validate_json(strip_code_fences(raw_output))
            except ValidationError as e:
                raise AugmentationUnavailableError(f"augmentation response not parseable: {e}") from e

        augmentation = coerce_augmentation(payload)
        logger.info(
            "augment complete: model=%s, severity=%s, meals=%d, %.1fs",
            self._model,
            diagnosis.severity.value,
            len(augmentation.diet_plan),
            time.perf_counter() - t0,
        )
        return augmentation


class DisabledAugmentationClient:
    """Augmentation port used when no provider is configured.

    Always fails, so every analysis settles on the fallback content.
    """

    async def augment(self, sample: CBCSample, diagnosis: Diagnosis) -> Augmentation:
        raise AugmentationUnavailableError("AI augmentation is not configured")


def build_augmenter() -> AugmentationPort:
    """Return the configured augmentation port."""
    if settings.openai_api_key:
        return OpenAIAugmentationClient()
    logger.warning("OPENAI_API_KEY not set - analyses will use fallback guidance")
    return DisabledAugmentationClient()
