from visa_interview.core.heuristics import (
    CONTENT_BUCKETS,
    analyze_transcript,
    content_score,
    heuristic_analysis,
    overall_score,
    speech_score,
)
from visa_interview.core.models import NO_RESPONSE, BodyLanguageSample, Difficulty, QuestionRecord

QUESTION = QuestionRecord(
    id="t-001",
    text="Why did you choose this university for your master's program?",
    category="academic",
    difficulty=Difficulty.MEDIUM,
    keywords=("ranking", "research"),
)

ON_TOPIC = ("I chose this university because its research program in data science is ranked highly "
            "and the faculty match my master's goals")
OFF_TOPIC = "The weather at home has been very pleasant this month and my cousins enjoy playing cricket"


def score_content(transcript):
    return content_score(QUESTION, transcript, analyze_transcript(transcript))


def test_content_buckets():
    assert score_content(NO_RESPONSE) == CONTENT_BUCKETS[0]
    assert score_content("Yes sir") == CONTENT_BUCKETS[0]
    assert score_content(OFF_TOPIC) == CONTENT_BUCKETS[1]
    assert score_content("The research program is good") == CONTENT_BUCKETS[1]
    assert score_content(ON_TOPIC) == CONTENT_BUCKETS[3]


def test_fillers_lower_speech_score():
    clean = speech_score(analyze_transcript(ON_TOPIC), 0.9)
    filled = speech_score(analyze_transcript("um so like I um chose uh this um university you know"), 0.9)
    assert filled < clean
    assert speech_score(analyze_transcript(""), 0.9) == 0


def test_overall_weights():
    assert overall_score(80, 50, 60, body_available=True) == 72
    assert overall_score(80, 50, 0, body_available=False) == 74


def test_no_response_scores_lowest():
    analysis = heuristic_analysis(QUESTION, NO_RESPONSE, None, None)
    assert analysis.categories["content"] == CONTENT_BUCKETS[0]
    assert analysis.categories["speech"] == 0
    assert analysis.overall == 8
    assert analysis.source == "heuristic"
    assert analysis.suggestions


def test_body_sample_is_used():
    sample = BodyLanguageSample(posture_score=90, gesture_score=80, expression_score=85, overall_score=88)
    analysis = heuristic_analysis(QUESTION, ON_TOPIC, sample, 0.9)
    assert analysis.categories["body_language"] == 88
    assert analysis.categories["content"] == CONTENT_BUCKETS[3]
