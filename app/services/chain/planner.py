import json
import logging
from typing import List

from pydantic import ValidationError

from app.services.chain.errors import PlanningFailed
from app.services.chain.models import SegmentPlan, SegmentPlanList

logger = logging.getLogger(__name__)

PLANNER_SYSTEM_PROMPT = """You are a senior prompt director for chained video generation.
Transform a BASE PROMPT, a fixed SEGMENT LENGTH (seconds), and TOTAL SEGMENTS (N)
into N crystal-clear shot prompts with maximum continuity.

Rules:
1) Output VALID JSON only, shape:
{
  "segments": [
    { "title": "Generation 1", "seconds": <int>, "prompt": "<prompt block>" },
    ...
  ]
}
- Every segment's "seconds" MUST equal the provided SEGMENT LENGTH.
- Each "prompt" MUST contain a short **Context** (for the model, not visible) and a **Prompt** line for the shot itself.

2) Continuity:
- Segment 1 starts from the BASE PROMPT.
- Segment k (k>1) MUST begin exactly at the final frame of segment k-1.
- Maintain consistent subject identity, style, tone, lighting, and camera language unless told otherwise.

3) Constraints:
- Avoid real people/public figures and copyrighted characters.
- Keep content suitable for general audiences.

4) Style:
- Be specific and cinematic. Include camera motion, focal subject, composition, lighting, lens hints, and pacing.
- Avoid vague language. Prefer concrete, actionable shot directions.

5) Output JSON only. No Markdown, no backticks, no commentary."""


def build_planner_user_prompt(base_prompt: str, seconds_per_segment: int, num_segments: int, model: str) -> str:
    return "\n".join([
        f"BASE PROMPT: {base_prompt}",
        f"SEGMENT LENGTH (seconds): {seconds_per_segment}",
        f"TOTAL SEGMENTS: {num_segments}",
        f"TARGET VIDEO MODEL: {model}",
        f"Return exactly {num_segments} segments.",
    ])


class SegmentPlanner:
    """Turns one base prompt into N continuity-aware segment prompts.

    The LLM output is validated against SegmentPlanList as a whole. Only two
    repairs are applied afterwards: every segment's seconds is overwritten
    with the caller's value, and surplus segments are dropped. A short plan
    is a failure, segments are never invented.
    """

    def __init__(self, llm_client):
        self.llm_client = llm_client

    def plan(self, base_prompt: str, seconds_per_segment: int, num_segments: int, model: str) -> List[SegmentPlan]:
        logger.info(f"Planning {num_segments} segments of {seconds_per_segment}s for {model}")
        user_prompt = build_planner_user_prompt(base_prompt, seconds_per_segment, num_segments, model)

        try:
            raw = self.llm_client.complete(PLANNER_SYSTEM_PROMPT, user_prompt)
        except Exception as e:
            raise PlanningFailed("Planner request failed", cause=e)

        segments = self.parse_plan(raw)

        for segment in segments:
            segment.seconds = seconds_per_segment

        if len(segments) > num_segments:
            logger.warning(f"Planner returned {len(segments)} segments, expected {num_segments}. Truncating.")
            segments = segments[:num_segments]
        elif len(segments) < num_segments:
            raise PlanningFailed(
                f"Planner returned too few segments: {len(segments)} < {num_segments}"
            )

        logger.info(f"Plan generated successfully: {len(segments)} segments")
        return segments

    @staticmethod
    def parse_plan(raw: str) -> List[SegmentPlan]:
        if not raw or not raw.strip():
            raise PlanningFailed("Planner returned an empty response")
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            raise PlanningFailed("Planner response is not valid JSON", cause=e)
        try:
            return SegmentPlanList.model_validate(payload).segments
        except ValidationError as e:
            raise PlanningFailed("Planner response does not match the segment schema", cause=e)


def serialize_plan(segments: List[SegmentPlan]) -> str:
    return json.dumps([segment.model_dump() for segment in segments])
