"""Resume/job fit scoring through a schema-constrained completion call."""
from __future__ import annotations

import json
import re
from typing import Any, Callable

from krisis.config import get_env
from krisis.errors import AnalysisParseError, CompletionError
from krisis.log import get_logger
from krisis.models import AnalysisResult

log = get_logger(__name__)

ANALYSIS_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "fitScore": {
            "type": "number",
            "description": "Score from 0-100 indicating fit for the role.",
        },
        "matchAnalysis": {
            "type": "string",
            "description": "Detailed analysis of alignment.",
        },
        "missingKeywords": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Skills missing from the resume, most important first.",
        },
        "suggestedImprovements": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Actionable suggestions, most impactful first.",
        },
        "ghostingRisk": {
            "type": "number",
            "description": "Score from 0-100 for the risk of never hearing back, "
                           "based on role trends and alignment.",
        },
        "tacticalSignal": {
            "type": "string",
            "description": "One-sentence tactical advice for this specific application.",
        },
        "urgencyLevel": {
            "type": "integer",
            "description": "Urgency from 1 to 5 for taking next steps.",
        },
    },
    "required": [
        "fitScore",
        "matchAnalysis",
        "missingKeywords",
        "suggestedImprovements",
        "ghostingRisk",
        "tacticalSignal",
        "urgencyLevel",
    ],
    "additionalProperties": False,
}

_PROMPT_TEMPLATE = """You are a strategic recruitment analyst.
Give a cold, objective assessment of how well this resume fits the job, and of the hidden risks.

JOB DESCRIPTION:
{job_description}

RESUME TEXT:
{resume_text}

INSTRUCTIONS:
- fitScore (0-100): judge against the hard requirements of the job.
- ghostingRisk (0-100): weigh the company profile against the resume's seniority (overqualified = high risk).
- missingKeywords / suggestedImprovements: ordered, most important first.
- tacticalSignal: one direct, specific instruction. No corporate fluff.
- urgencyLevel: whole number 1-5.

Respond with a single JSON object with exactly these keys:
fitScore, matchAnalysis, missingKeywords, suggestedImprovements, ghostingRisk, tacticalSignal, urgencyLevel."""

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)


def build_prompt(resume_text: str, job_description: str) -> str:
    return _PROMPT_TEMPLATE.format(
        job_description=job_description.strip(),
        resume_text=resume_text.strip(),
    )


def clean_json_response(text: str) -> str:
    """Unwrap a ```json fenced block if the model added one."""
    match = _FENCE_RE.search(text)
    return match.group(1).strip() if match else text.strip()


def parse_analysis(text: str) -> AnalysisResult:
    cleaned = clean_json_response(text)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise AnalysisParseError(f"invalid JSON: {exc}", raw=text) from exc
    try:
        return AnalysisResult.from_dict(data)
    except ValueError as exc:
        raise AnalysisParseError(f"schema mismatch: {exc}", raw=text) from exc


def _call_completion(
    api_key: str,
    base_url: str,
    model: str,
    prompt: str,
    temperature: float,
    timeout: float,
) -> str:
    from openai import OpenAI

    # max_retries=0: a failed attempt is reported, not repeated
    client = OpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)
    r = client.chat.completions.create(
        model=model,
        messages=[{"role": "user", "content": prompt}],
        temperature=temperature,
        response_format={
            "type": "json_schema",
            "json_schema": {"name": "fit_analysis", "strict": True, "schema": ANALYSIS_SCHEMA},
        },
    )
    return r.choices[0].message.content or ""


class FitScorer:
    def __init__(
        self,
        api_key: str = "",
        model: str = "llama-3.3-70b-versatile",
        base_url: str = "https://api.groq.com/openai/v1",
        temperature: float = 0.4,
        timeout: float = 30.0,
        complete: Callable[[str], str] | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.temperature = temperature
        self.timeout = timeout
        self._complete = complete or self._complete_remote

    @classmethod
    def from_settings(cls, settings: dict[str, Any]) -> "FitScorer":
        llm = settings["llm"]
        return cls(
            api_key=get_env("GROQ_API_KEY"),
            model=llm["model"],
            base_url=llm["base_url"],
            temperature=float(llm.get("temperature", 0.4)),
            timeout=float(settings["timeouts"]["completion"]),
        )

    def _complete_remote(self, prompt: str) -> str:
        if not self.api_key:
            raise CompletionError("GROQ_API_KEY is not set")
        return _call_completion(self.api_key, self.base_url, self.model, prompt, self.temperature, self.timeout)

    def analyze(self, resume_text: str, job_description: str) -> AnalysisResult:
        prompt = build_prompt(resume_text, job_description)
        try:
            raw = self._complete(prompt)
        except CompletionError as exc:
            log.error("Completion call failed (model=%s): %s", self.model, exc)
            raise
        except Exception as exc:
            log.error("Completion call failed (model=%s): %s: %s", self.model, type(exc).__name__, exc)
            raise CompletionError(f"{type(exc).__name__}: {exc}") from exc

        if not raw or not raw.strip():
            log.error("Completion returned an empty body (model=%s)", self.model)
            raise CompletionError("empty response from completion service")

        log.debug("Raw completion output (%s): %s", self.model, raw)
        try:
            result = parse_analysis(raw)
        except AnalysisParseError as exc:
            log.error("Unusable analysis from %s: %s\n--- raw response ---\n%s", self.model, exc, exc.raw)
            raise

        log.info("Analysis complete: fit=%s ghosting=%s urgency=%d",
                 result.fit_score, result.ghosting_risk, result.urgency_level)
        return result
