import asyncio
import json
import math
import re
from dataclasses import asdict
from typing import Any, Dict, List, TypedDict

from langgraph.graph import END, StateGraph
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from visa_interview.core.exceptions import ScoringTimeoutError
from visa_interview.core.heuristics import heuristic_analysis
from visa_interview.core.models import Analysis, BodyLanguageSample, QuestionRecord
from visa_interview.core.prompts import NARRATIVE_SCORER_PROMPT, NARRATIVE_SCORER_TEMPLATE
from visa_interview.core.providers import ProviderChain
from visa_interview.core.transcript import normalize_answer
from visa_interview.utils.logger import SessionEventLogger

HISTORY_LIMIT = 4


class ScoringState(TypedDict):
    question: QuestionRecord
    transcript: str
    body_sample: BodyLanguageSample | None
    stt_confidence: float | None
    history: List[Dict[str, str]]
    analysis: Analysis | None


class NarrativeScore(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    overall: float = Field(ge=0, le=100)
    categories: Dict[str, float] = {}
    summary: str = ""
    recommendations: List[str] = []


def _clamp(value: float) -> int:
    return max(0, min(100, round(value)))


class ResponseScorer:
    """Heuristic score first, then a best-effort narrative override."""

    def __init__(self, chain: ProviderChain, timeout: float = 20.0, events: SessionEventLogger | None = None):
        self.chain = chain
        self.timeout = timeout
        self.events = events or SessionEventLogger()
        self.graph = self._build_graph()

    async def score(
        self,
        question: QuestionRecord,
        transcript: str | None,
        body_sample: BodyLanguageSample | None = None,
        stt_confidence: float | None = None,
        history: List[Dict[str, str]] | None = None
    ) -> Analysis:
        state: ScoringState = {
            "question": question,
            "transcript": normalize_answer(transcript),
            "body_sample": body_sample,
            "stt_confidence": stt_confidence,
            "history": list(history or [])[-HISTORY_LIMIT:],
            "analysis": None
        }
        result = await self.graph.ainvoke(state)
        return result["analysis"]

    def heuristic_node(self, state: ScoringState) -> ScoringState:
        analysis = heuristic_analysis(
            state["question"], state["transcript"], state["body_sample"], state["stt_confidence"]
        )
        state["analysis"] = analysis
        self.events.log("Scorer", f"Heuristic score {analysis.overall}", {"categories": analysis.categories})
        return state

    async def narrative_node(self, state: ScoringState) -> ScoringState:
        prompt = self._build_prompt(state)
        try:
            content = await asyncio.wait_for(self.chain.complete(NARRATIVE_SCORER_PROMPT, prompt), timeout=self.timeout)
        except asyncio.TimeoutError:
            error = ScoringTimeoutError(f"Narrative scorer timed out after {self.timeout}s")
            self.events.warning("Scorer", f"{error}; keeping heuristic score")
            return state

        if not content:
            self.events.log("Scorer", "No narrative available; keeping heuristic score")
            return state

        parsed = self._extract_json(content)
        try:
            narrative = NarrativeScore.model_validate(parsed)
            merged = self._merge(state["analysis"], narrative)
        except ValidationError as e:
            self.events.warning("Scorer", f"Narrative reply rejected: {e.error_count()} validation errors")
            return state
        except Exception as e:
            self.events.warning("Scorer", f"Narrative merge failed ({e!r}); keeping heuristic score")
            return state

        state["analysis"] = merged
        self.events.log("Scorer", f"Narrative score {state['analysis'].overall}")
        return state

    def should_request_narrative(self, state: ScoringState) -> str:
        return "narrative" if self.chain.has_remote else "done"

    def _build_prompt(self, state: ScoringState) -> str:
        question = state["question"]
        history = "\n".join(
            f"Q: {item.get('question', '')}\nA: {item.get('answer', '')[:300]}" for item in state["history"]
        ) or "(none)"
        heuristic = state["analysis"]
        return NARRATIVE_SCORER_TEMPLATE.format(
            category=question.category,
            difficulty=question.difficulty.value,
            question=question.text,
            answer=state["transcript"][:2000],
            body=json.dumps(asdict(state["body_sample"])) if state["body_sample"] else "unavailable",
            confidence=f"{state['stt_confidence']:.2f}" if state["stt_confidence"] is not None else "unknown",
            history=history,
            heuristic=json.dumps({"overall": heuristic.overall, "categories": heuristic.categories}) if heuristic else "{}"
        )

    @staticmethod
    def _merge(heuristic: Analysis, narrative: NarrativeScore) -> Analysis:
        categories = dict(heuristic.categories)
        for key, value in narrative.categories.items():
            if math.isfinite(value):
                categories[key] = _clamp(value)
        return Analysis(
            overall=_clamp(narrative.overall),
            categories=categories,
            feedback=narrative.summary or heuristic.feedback,
            suggestions=list(narrative.recommendations) or list(heuristic.suggestions),
            source="narrative"
        )

    @staticmethod
    def _parse_json_response(content: str) -> str | None:
        if "```json" in content:
            json_str = content.split("```json")[1].split("```")[0].strip()
        elif "```" in content:
            json_str = content.split("```")[1].split("```")[0].strip()
        else:
            json_str = content.strip()

        if not json_str or not json_str.startswith("{"):
            start_idx = content.find("{")
            end_idx = content.rfind("}")
            if start_idx != -1 and end_idx > start_idx:
                json_str = content[start_idx:end_idx + 1]

        return json_str.strip() if json_str else None

    def _extract_json(self, content: str) -> Dict[str, Any]:
        json_str = self._parse_json_response(content)
        if not json_str:
            self.events.warning("Scorer", f"No JSON in narrative reply: {content[:200]}")
            return {}
        try:
            return json.loads(json_str)
        except json.JSONDecodeError:
            cleaned = re.sub(r',\s*}', '}', json_str)
            cleaned = re.sub(r',\s*]', ']', cleaned)
            try:
                return json.loads(cleaned)
            except json.JSONDecodeError as e:
                self.events.warning("Scorer", f"Could not parse narrative JSON: {e}")
                return {}

    def _build_graph(self):
        workflow = StateGraph(ScoringState)
        workflow.add_node("heuristic", self.heuristic_node)
        workflow.add_node("narrative", self.narrative_node)
        workflow.set_entry_point("heuristic")
        workflow.add_conditional_edges(
            "heuristic",
            self.should_request_narrative,
            {"narrative": "narrative", "done": END}
        )
        workflow.add_edge("narrative", END)
        return workflow.compile()
