"""Rules that react to what the candidate has already said.

Context flags record facts surfaced by earlier answers (a scholarship, a past
refusal, relatives abroad) and unlock catalog questions tagged with
``requires_context``. Follow-up rules pair an answer pattern with a trigger
that spots a vague or incomplete answer and produce one clarifying question.
"""
import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Set, Tuple

from visa_interview.core.models import Difficulty, QuestionRecord

CONTEXT_FLAG_PATTERNS: Dict[str, re.Pattern] = {
    "has_failures": re.compile(r"fail|backlog|arrear|poor.*grade|low.*gpa", re.I),
    "low_gpa": re.compile(r"gpa.*\b[12]\.\d|low.*gpa|poor.*grade|below (the )?average", re.I),
    "has_relatives_abroad": re.compile(r"relative|uncle|aunt|cousin|brother|sister", re.I),
    "has_scholarship": re.compile(r"scholarship|grant|award|stipend|bursary", re.I),
    "has_work_experience": re.compile(r"\bwork(ed|ing)?\b|\bjob\b|employee|experience.*(year|month)", re.I),
    "has_refusal": re.compile(r"refus|denied|rejected", re.I),
    "mentioned_return_plans": re.compile(r"return|come back|go back|plan.*after", re.I),
}


def detect_context_flags(answers: Iterable[str]) -> Set[str]:
    text = " ".join(answers)
    return {flag for flag, pattern in CONTEXT_FLAG_PATTERNS.items() if pattern.search(text)}


def _words(answer: str) -> int:
    return len(answer.split())


def _lacks(pattern: str) -> Callable[[str], bool]:
    compiled = re.compile(pattern, re.I)
    return lambda answer: not compiled.search(answer)


@dataclass(frozen=True)
class FollowUpRule:
    key: str
    pattern: re.Pattern
    trigger: Callable[[str], bool]
    text: str
    category: str
    keywords: Tuple[str, ...] = ()

    def matches(self, answer: str) -> bool:
        return bool(self.pattern.search(answer)) and self.trigger(answer)

    def question_id(self, route: str) -> str:
        return f"followup-{route}-{self.key}"

    def to_question(self, route: str) -> QuestionRecord:
        return QuestionRecord(
            id=self.question_id(route),
            text=self.text,
            category=self.category,
            difficulty=Difficulty.MEDIUM,
            routes=(route,),
            keywords=self.keywords,
            follow_up=True,
        )


def _rule(key, pattern, trigger, text, category, keywords=()) -> FollowUpRule:
    return FollowUpRule(key, re.compile(pattern, re.I), trigger, text, category, tuple(keywords))


USA_FOLLOW_UPS: Tuple[FollowUpRule, ...] = (
    _rule(
        "parent_amount", r"parents?|father|mother|family",
        lambda a: bool(re.search(r"will pay|paying|support|fund", a, re.I)) and _lacks(r"\$\d+|dollar|usd|thousand")(a),
        "You mentioned your family will pay for your education. Can you specify the exact dollar amount they will contribute?",
        "financial", ("amount", "dollars", "savings"),
    ),
    _rule(
        "scholarship_amount", r"scholarship|award|grant",
        _lacks(r"\$\d+|amount|percent|full|partial"),
        "You mentioned a scholarship. Can you specify the exact amount or percentage of tuition it covers?",
        "financial", ("amount", "percentage", "tuition"),
    ),
    _rule(
        "loan_terms", r"\bloan\b",
        _lacks(r"approved|sanctioned|\$\d+|interest|rate|tenure|emi|amount"),
        "You mentioned an education loan. Is it approved, and what are the sanctioned amount, interest rate and repayment plan?",
        "financial", ("approved", "amount", "interest", "repayment"),
    ),
    _rule(
        "deposit_source", r"deposit|lump sum",
        _lacks(r"salary|business income|sale deed|gift deed|inheritance|evidence"),
        "Can you explain the source of the recent deposits in your bank statement, with evidence?",
        "financial", ("salary", "business", "deed", "evidence"),
    ),
    _rule(
        "uncertain_return", r"return|come back|go back|plans?",
        lambda a: bool(re.search(r"maybe|thinking|might|probably|considering", a, re.I)),
        "You seem uncertain about returning home. What concrete plans or commitments tie you to your home country after graduation?",
        "post_study", ("family", "job", "commitment", "return"),
    ),
    _rule(
        "generic_choice", r"dream|passion|world[- ]?class|best",
        lambda a: bool(re.search(r"(fulfil+|achieve) (my )?dream|(world[- ]?class|best) (education|university)", a, re.I)),
        "Can you give me more specific, practical reasons for choosing this university beyond general statements?",
        "academic", ("faculty", "curriculum", "research"),
    ),
)

UK_FOLLOW_UPS: Tuple[FollowUpRule, ...] = (
    _rule(
        "maintenance_amount", r"sufficient|enough|covered|funds?",
        _lacks(r"£\s?\d|\d{4,}|thousand"),
        "You mentioned having sufficient funds. Can you specify the exact maintenance amount required for your course?",
        "financial", ("maintenance", "amount", "months"),
    ),
    _rule(
        "agent_research", r"agent|consultant|agency",
        lambda a: bool(re.search(r"told|said|suggested|recommended|helped|guided", a, re.I)),
        "You mentioned an agent. What independent research did you do about the university and course?",
        "general", ("research", "website", "comparison"),
    ),
    _rule(
        "work_hours", r"\bwork|\bjob|employment|earn",
        _lacks(r"20 hours?|part[- ]?time|limit|restriction"),
        "Are you aware of the work hour restrictions for international students in the UK?",
        "general", ("20", "hours", "term"),
    ),
    _rule(
        "accommodation_cost", r"accommodation|housing|residence",
        _lacks(r"£\s?\d|week|month|address|arranged"),
        "Can you give more details about your accommodation, including the weekly or monthly cost?",
        "general", ("accommodation", "cost", "month"),
    ),
)

FRANCE_FOLLOW_UPS: Tuple[FollowUpRule, ...] = (
    _rule(
        "course_duration", r"course|programme|program",
        _lacks(r"duration|length|years?|months?|\d+"),
        "Can you specify the exact duration of your course?",
        "academic", ("years", "months", "duration"),
    ),
    _rule(
        "tuition_amount", r"tuition|fees?|cost",
        _lacks(r"€|euro|amount|\d+"),
        "Can you provide the exact tuition fee amount for your programme?",
        "financial", ("euro", "amount", "tuition"),
    ),
    _rule(
        "sponsor_identity", r"sponsor|financing|paying",
        _lacks(r"parent|family|loan|scholarship|savings"),
        "Who specifically will sponsor your studies, and what is their relationship to you?",
        "financial", ("parents", "relationship", "sponsor"),
    ),
    _rule(
        "career_target", r"career|objectives?|goals?",
        lambda a: _words(a) < 20 and _lacks(r"specific|role|position|industry")(a),
        "Can you be more specific about your career objectives and the role you are targeting?",
        "post_study", ("role", "industry", "position"),
    ),
)

FOLLOW_UP_RULES: Dict[str, Tuple[FollowUpRule, ...]] = {
    "usa_f1": USA_FOLLOW_UPS,
    "uk_student": UK_FOLLOW_UPS,
    "france_ema": FRANCE_FOLLOW_UPS,
    "france_icn": FRANCE_FOLLOW_UPS,
}


def find_follow_up(route: str, answer: str, asked: Iterable[str] = ()) -> FollowUpRule | None:
    asked = set(asked)
    for rule in FOLLOW_UP_RULES.get(route, ()):
        if rule.question_id(route) not in asked and rule.matches(answer):
            return rule
    return None
