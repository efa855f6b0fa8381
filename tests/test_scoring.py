from coaching_assistant.scoring import quality_bucket, score_question


def test_short_open_question():
    result = score_question("What matters most here?")
    assert result.scores == {"length": 3, "open_ended": 10, "clarity": 10, "powerful": 5}
    assert result.total == 28
    assert result.quality == "good"


def test_powerful_question_scores_excellent():
    result = score_question("What would you do differently if you knew you couldn't fail?")
    assert result.scores["length"] == 10
    assert result.scores["powerful"] == 10
    assert result.total == 40
    assert result.quality == "excellent"


def test_closed_jargon_question_needs_improvement():
    result = score_question(
        "Do you think overcommunication is the responsibility of everyone involved?"
    )
    assert result.scores["open_ended"] == 3
    assert result.scores["clarity"] == 4
    assert result.scores["powerful"] == 0
    assert result.quality == "needs improvement"


def test_buckets():
    assert quality_bucket(30) == "excellent"
    assert quality_bucket(29) == "good"
    assert quality_bucket(20) == "good"
    assert quality_bucket(19) == "needs improvement"
