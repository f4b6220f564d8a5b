from __future__ import annotations

import json
import logging
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from openai import OpenAI

from interview_gate.scoring import BELOW_AVERAGE, ScoreResult, performance_bucket

log = logging.getLogger(__name__)

_BUCKET_SENTENCES = {
    "excellent": "Excellent performance with a {pct}% score.",
    "strong": "Strong performance with a {pct}% score.",
    "good": "Good performance with a {pct}% score.",
    "average": "Average performance with a {pct}% score.",
    BELOW_AVERAGE: "Below-average performance with a {pct}% score.",
}

DEFAULT_STRENGTH = "Shows potential and completed the assessment"
DEFAULT_IMPROVEMENT = "Keep practicing with similar questions to build consistency"


@dataclass
class Feedback:
    overallPerformance: str
    strengths: list[str]
    improvements: list[str]
    perQuestionNotes: list[str]
    recommendations: list[str] = field(default_factory=list)
    timeManagement: str = ""
    confidenceAnalysis: str = ""
    bucket: str = BELOW_AVERAGE
    source: str = "rules"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class FeedbackGenerator:
    """External text generation: one prompt in, one completion out."""

    def generate(self, prompt: str) -> str:
        raise NotImplementedError


class OpenAIFeedbackGenerator(FeedbackGenerator):
    def __init__(self, *, api_key: str, model: str = "gpt-4o-mini", timeout_seconds: float = 20):
        self._client = OpenAI(api_key=api_key, timeout=timeout_seconds, max_retries=1)
        self._model = model

    def generate(self, prompt: str) -> str:
        response = self._client.chat.completions.create(
            model=self._model,
            messages=[
                {
                    "role": "system",
                    "content": "You are an expert interview coach. Respond with strict JSON only, without markdown fences.",
                },
                {"role": "user", "content": prompt},
            ],
            temperature=0.3,
            max_tokens=600,
        )
        return response.choices[0].message.content if response.choices else ""


def build_feedback_generator(cfg) -> Optional[FeedbackGenerator]:
    if not cfg.FEEDBACK_AI_ENABLED or not cfg.OPENAI_API_KEY:
        return None
    return OpenAIFeedbackGenerator(
        api_key=cfg.OPENAI_API_KEY,
        model=cfg.OPENAI_MODEL,
        timeout_seconds=cfg.OPENAI_TIMEOUT_SECONDS,
    )


def _extract_json_candidate(text: str) -> Optional[dict[str, Any]]:
    text = str(text or "").strip()
    if not text:
        return None
    try:
        parsed = json.loads(text)
    except ValueError:
        match = re.search(r"\{.*\}", text, re.S)
        if not match:
            return None
        try:
            parsed = json.loads(match.group(0))
        except ValueError:
            return None
    return parsed if isinstance(parsed, dict) else None


def _time_remark(per_question: float) -> tuple[str, str]:
    if per_question < 30:
        return "fast", "Answered quickly, averaging under 30 seconds per question."
    if per_question < 60:
        return "moderate", "Maintained a steady pace of under a minute per question."
    return "slow", "Took over a minute per question on average."


def _confidence_analysis(avg: Optional[float], pct: int) -> str:
    if avg is None:
        return ""
    if avg >= 4 and pct < 60:
        return f"Average confidence {avg}/5 is higher than the results support."
    if avg < 3 and pct >= 70:
        return f"Average confidence {avg}/5 undersells a solid result."
    return f"Average confidence {avg}/5 is in line with performance."


def _question_note(r) -> str:
    if r.selectedAnswer is not None or r.correctAnswer is not None:
        if r.isCorrect:
            return f"Q{r.position + 1}: correct."
        if not r.answered:
            return f"Q{r.position + 1}: not answered; correct answer is {r.correctAnswer}."
        return f"Q{r.position + 1}: selected {r.selectedAnswer}, correct answer is {r.correctAnswer}."
    if r.answered:
        return f"Q{r.position + 1}: answered."
    return f"Q{r.position + 1}: no answer provided."


def _recommendations(result: ScoreResult, pct: int, avg_confidence: Optional[float]) -> list[str]:
    recs: list[str] = []
    if pct < 60:
        recs.append("Focus on strengthening fundamental concepts")
        recs.append("Practice more questions in weak areas")
    elif pct < 80:
        recs.append("Good foundation, work on advanced topics")
        recs.append("Review incorrect answers to identify knowledge gaps")
    else:
        recs.append("Excellent performance, consider more challenging material")

    if avg_confidence is not None:
        if avg_confidence < 3:
            recs.append("Build confidence through more practice")
        elif avg_confidence > 4.5:
            recs.append("Double-check answers even when confident")

    times = [r.timeSpent for r in result.graded if r.answered]
    if times:
        quick = sum(1 for t in times if t < 30)
        slow = sum(1 for t in times if t > 90)
        if quick > len(times) * 0.5:
            recs.append("Take more time to carefully read questions")
        elif slow > len(times) * 0.3:
            recs.append("Practice to improve response time")
    return recs


def rule_based_feedback(
    result: ScoreResult,
    average_confidence: Optional[float],
    total_time_spent: float,
) -> Feedback:
    pct = result.percentage
    bucket = performance_bucket(pct)
    graded = result.graded
    per_question = float(total_time_spent or 0) / max(1, len(graded))
    pace, time_remark = _time_remark(per_question)

    strengths: list[str] = []
    improvements: list[str] = []

    if pct >= 80:
        strengths.append("Strong overall accuracy")
    elif pct < 60:
        improvements.append("Overall score is below the passing mark; revisit the core topics")

    for category, accuracy in sorted(result.category_accuracy().items()):
        if accuracy >= 80:
            strengths.append(f"Strong grasp of {category}")
        elif accuracy < 50:
            improvements.append(f"Review {category} concepts")

    if pace == "fast" and pct >= 60:
        strengths.append("Efficient time management")
    elif pace == "fast":
        improvements.append("Slow down and read each question carefully")
    elif pace == "slow":
        improvements.append("Work on response time")

    if average_confidence is not None:
        if average_confidence >= 4 and pct >= 70:
            strengths.append("Confidence matches performance")
        elif average_confidence < 3:
            improvements.append("Build confidence in your answers")

    return Feedback(
        overallPerformance=f"{_BUCKET_SENTENCES[bucket].format(pct=pct)} {time_remark}",
        strengths=strengths or [DEFAULT_STRENGTH],
        improvements=improvements or [DEFAULT_IMPROVEMENT],
        perQuestionNotes=[_question_note(r) for r in graded],
        recommendations=_recommendations(result, pct, average_confidence),
        timeManagement=time_remark,
        confidenceAnalysis=_confidence_analysis(average_confidence, pct),
        bucket=bucket,
    )


def _build_prompt(result: ScoreResult, base: Feedback, average_confidence: Optional[float], total_time_spent: float) -> str:
    payload = {
        "interviewType": result.interviewType,
        "score": result.score,
        "maxScore": result.maxScore,
        "percentage": result.percentage,
        "averageConfidence": average_confidence,
        "totalTimeSpentSeconds": total_time_spent,
        "questions": [r.to_dict() for r in result.graded],
    }
    return (
        "Analyze this interview performance and give constructive feedback.\n"
        f"{json.dumps(payload)}\n"
        "Return a JSON object with keys: overallPerformance (string), strengths (array of strings), "
        "areasForImprovement (array of strings), timeManagement (string), confidenceAnalysis (string), "
        "recommendations (array of strings).\n"
        f"Baseline assessment: {base.overallPerformance}"
    )


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [s.strip() for s in value if isinstance(s, str) and s.strip()]


def _merge(base: Feedback, parsed: dict[str, Any]) -> Feedback:
    overall = parsed.get("overallPerformance")
    strengths = _str_list(parsed.get("strengths"))
    improvements = _str_list(parsed.get("areasForImprovement") or parsed.get("improvements"))
    recs = _str_list(parsed.get("recommendations"))
    if not isinstance(overall, str) or not overall.strip():
        raise ValueError("missing overallPerformance")

    time_mgmt = parsed.get("timeManagement")
    confidence = parsed.get("confidenceAnalysis")
    return Feedback(
        overallPerformance=overall.strip(),
        strengths=strengths or base.strengths,
        improvements=improvements or base.improvements,
        perQuestionNotes=base.perQuestionNotes,
        recommendations=recs or base.recommendations,
        timeManagement=time_mgmt.strip() if isinstance(time_mgmt, str) and time_mgmt.strip() else base.timeManagement,
        confidenceAnalysis=(
            confidence.strip() if isinstance(confidence, str) and confidence.strip() else base.confidenceAnalysis
        ),
        bucket=base.bucket,
        source="ai",
    )


def synthesize(
    result: ScoreResult,
    average_confidence: Optional[float] = None,
    total_time_spent: float = 0,
    *,
    generator: Optional[FeedbackGenerator] = None,
) -> Feedback:
    """
    Rule-based feedback, optionally enriched by `generator`.

    Generation is best-effort: any failure or unusable output returns the
    rule-based result unchanged.
    """
    base = rule_based_feedback(result, average_confidence, total_time_spent)
    if generator is None:
        return base

    try:
        text = generator.generate(_build_prompt(result, base, average_confidence, total_time_spent))
        parsed = _extract_json_candidate(text)
        if parsed is None:
            log.warning("feedback.fallback reason=unparsable_output")
            return base
        return _merge(base, parsed)
    except Exception as e:
        log.warning("feedback.fallback reason=%s error=%s", type(e).__name__, e)
        return base
