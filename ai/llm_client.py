# ai/llm_client.py
import asyncio
import json
import logging
import re
from typing import Optional

from openai import AsyncOpenAI
from openai import APITimeoutError, AuthenticationError, OpenAIError
from pydantic import ValidationError

from ai.post_processor import sanitize_evaluation
from config.settings import Settings
from errors import EvaluationEngineError
from schemas import EngineEvaluation, EvaluationResult

logger = logging.getLogger(__name__)

STRUCTURED_SYSTEM_PROMPT = "You are an expert at evaluating customer support responses."
JSON_SYSTEM_PROMPT = (
    "You are an expert at evaluating customer support responses. "
    "Always respond with valid JSON only, no other text."
)

_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


def extract_json(text: str) -> dict:
    """Parse a JSON object, tolerating code fences or chatter around it."""
    text = (text or "").strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        match = _JSON_OBJECT_RE.search(text)
        if not match:
            raise ValueError("no JSON object in engine response")
        return json.loads(match.group(0))


class EvaluationEngine:
    """
    Single, authoritative evaluation-engine entrypoint.
    Always returns an EvaluationResult or raises EvaluationEngineError.

    Reasoning models (gpt-5*, o1*, o3*) use Structured Outputs and are
    validated directly. Everything else returns loose JSON which goes
    through the post-processor.
    """

    def __init__(self, settings: Settings, client: Optional[AsyncOpenAI] = None):
        self.settings = settings
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self.settings.openai_api_key) or self._client is not None

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.settings.openai_api_key,
                timeout=self.settings.openai_timeout,
                max_retries=0,
            )
        return self._client

    async def evaluate(self, prompt: str, tags=None, classification: Optional[dict] = None) -> EvaluationResult:
        """
        `tags` and `classification` only matter on the loose JSON path, where
        they drive the services tone floor. Pass the same classification that
        picked the prompt context note.
        """
        if not self.configured:
            raise EvaluationEngineError("OpenAI API key is missing")

        model = self.settings.openai_model
        timeout = self.settings.openai_timeout
        structured = self.settings.uses_reasoning_model

        logger.info(
            "LLM_CALL_START model=%s structured=%s prompt_len=%s",
            model,
            structured,
            len(prompt),
        )

        try:
            if structured:
                call = self._evaluate_structured(prompt)
            else:
                call = self._evaluate_json(prompt, tags, classification)
            result = await asyncio.wait_for(call, timeout=timeout)

        except EvaluationEngineError:
            raise

        except (asyncio.TimeoutError, APITimeoutError) as e:
            logger.error("LLM timeout model=%s after %ss", model, timeout)
            raise EvaluationEngineError(f"Evaluation engine timed out after {timeout:g}s") from e

        except AuthenticationError as e:
            logger.exception("LLM auth error")
            raise EvaluationEngineError("Evaluation engine authentication failed") from e

        except OpenAIError as e:
            logger.exception("LLM OpenAI error")
            raise EvaluationEngineError(f"Evaluation engine error: {e}") from e

        except (ValueError, ValidationError) as e:
            logger.error("LLM returned an unusable evaluation: %s", e)
            raise EvaluationEngineError(f"Unusable evaluation response: {str(e)[:200]}") from e

        except Exception as e:
            logger.exception("LLM unknown error")
            raise EvaluationEngineError(f"Unexpected evaluation error: {str(e)[:200]}") from e

        logger.info("LLM_CALL_OK model=%s overall=%s", model, result.overall_score)
        return result

    async def _evaluate_structured(self, prompt: str) -> EvaluationResult:
        s = self.settings
        logger.debug(
            "Using model=%s reasoning_effort=%s verbosity=%s max_completion_tokens=%s",
            s.openai_model,
            s.openai_reasoning_effort,
            s.openai_text_verbosity,
            s.openai_max_output_tokens,
        )
        completion = await self.client.chat.completions.parse(
            model=s.openai_model,
            messages=[
                {"role": "system", "content": STRUCTURED_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            reasoning_effort=s.openai_reasoning_effort,
            verbosity=s.openai_text_verbosity,
            max_completion_tokens=s.openai_max_output_tokens,
            response_format=EngineEvaluation,
        )
        message = completion.choices[0].message
        if message.parsed is None:
            raise EvaluationEngineError(f"Engine refused to evaluate: {message.refusal or 'empty response'}")
        # Schema-guaranteed: validate ranges, no repair
        return EvaluationResult.model_validate(message.parsed.model_dump())

    async def _evaluate_json(self, prompt: str, tags, classification: Optional[dict]) -> EvaluationResult:
        s = self.settings
        logger.debug(
            "Using model=%s temperature=%s max_tokens=%s",
            s.openai_model,
            s.openai_temperature,
            s.openai_max_tokens,
        )
        resp = await self.client.chat.completions.create(
            model=s.openai_model,
            messages=[
                {"role": "system", "content": JSON_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            temperature=s.openai_temperature,
            max_tokens=s.openai_max_tokens,
        )
        content = resp.choices[0].message.content or ""
        return sanitize_evaluation(extract_json(content), tags, classification)
