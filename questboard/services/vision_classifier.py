"""Vision classifier adapter: asks a multimodal model whether an image proves a task was done.

One non-streaming request per call: a single user turn holding the instruction
text and the inline image. The answer is returned verbatim; interpreting it is
the verdict parser's job.
"""

import asyncio
import logging

from pydantic_ai import Agent, BinaryContent
from pydantic_ai.models import Model
from pydantic_ai.models.openrouter import OpenRouterModel, OpenRouterModelSettings
from pydantic_ai.providers.openrouter import OpenRouterProvider
from pydantic_ai.settings import ModelSettings

from questboard.core.config import Constants, settings
from questboard.core.errors import ClassifierUnavailableError, classify_upstream_error
from questboard.core.logging import log_with_context, span


logger = logging.getLogger(__name__)

VERIFICATION_PROMPT = """You are verifying proof that a person completed one of their tasks.

Task: {title}
Details: {description}

Look at the attached image and decide whether it is legitimate evidence that this task was completed.
Screenshots of finished design work (mockups, canvases, exported designs) count as valid evidence.
Screenshots of accepted or passing coding-problem submissions count as valid evidence.
Unrelated, blank, unreadable or obviously staged images do not.

Start your answer with exactly ##yes## or ##no##, then explain your reasoning in one or two sentences."""


def build_verification_prompt(*, title: str, description: str = "") -> str:
    """Fill the fixed verification instructions with the task being judged."""
    return VERIFICATION_PROMPT.format(title=title, description=description or "(none given)")


def _create_model() -> Model:
    """Build the OpenRouter model used in production."""
    api_key = settings.require_credential("openrouter_api_key", "OpenRouter API key")
    provider = OpenRouterProvider(api_key=api_key)

    model_settings: OpenRouterModelSettings | None = None
    if settings.model_provider:
        model_settings = OpenRouterModelSettings(openrouter_provider={"only": [settings.model_provider]})

    return OpenRouterModel(
        model_name=settings.model_id,
        provider=provider,
        settings=model_settings,
    )


class VisionClassifier:
    """Wraps a Pydantic AI agent that judges proof images."""

    def __init__(
        self,
        model: Model | None = None,
        *,
        timeout_seconds: float | None = None,
        max_tokens: int | None = None,
    ) -> None:
        self._model = model
        self._agent: Agent[None, str] | None = None
        self._timeout_seconds = timeout_seconds or settings.classifier_timeout_seconds
        self._max_tokens = max_tokens or settings.classifier_max_tokens

    def _get_agent(self) -> Agent[None, str]:
        if self._agent is None:
            model = self._model or _create_model()
            # Retries stay off: every retry is an explicit, quota-limited user action
            self._agent = Agent(model=model, output_type=str, retries=0)
        return self._agent

    async def classify(self, *, image: bytes, media_type: str, prompt: str) -> str:
        """Send the prompt and image to the model and return its raw answer.

        Raises:
            ClassifierUnavailableError: On timeout, upstream failure, missing
                credentials, or an empty answer
        """
        with span("vision_classifier.classify"):
            try:
                agent = self._get_agent()
            except ValueError as e:
                logger.error("classifier_not_configured", extra={"error": str(e)})
                raise ClassifierUnavailableError("Verification service is not configured", details=str(e)) from e

            run_settings = ModelSettings(
                temperature=Constants.CLASSIFIER_TEMPERATURE,
                max_tokens=self._max_tokens,
                timeout=self._timeout_seconds,
            )

            try:
                result = await asyncio.wait_for(
                    agent.run(
                        [prompt, BinaryContent(data=image, media_type=media_type)],
                        model_settings=run_settings,
                    ),
                    timeout=self._timeout_seconds,
                )
            except TimeoutError as e:
                log_with_context(
                    logger,
                    "error",
                    "classifier_timeout",
                    timeout_seconds=self._timeout_seconds,
                    image_bytes=len(image),
                )
                raise ClassifierUnavailableError(
                    "Verification service timed out",
                    details=f"No answer within {self._timeout_seconds:g}s",
                ) from e
            except Exception as e:
                category, message = classify_upstream_error(e)
                logger.exception(
                    "classifier_call_failed",
                    extra={"category": category.value, "error_type": type(e).__name__, "image_bytes": len(image)},
                )
                raise ClassifierUnavailableError(message, details=str(e)) from e

            output = result.output
            if not output or not output.strip():
                logger.error("classifier_empty_output", extra={"image_bytes": len(image)})
                raise ClassifierUnavailableError("Verification service returned no answer")

            logger.info("classifier_answered", extra={"output_chars": len(output)})
            return output


class _ClassifierState:
    """Singleton state for the classifier instance."""

    instance: VisionClassifier | None = None


def get_classifier() -> VisionClassifier:
    """Get or create the shared classifier instance."""
    if _ClassifierState.instance is None:
        _ClassifierState.instance = VisionClassifier()
    return _ClassifierState.instance
