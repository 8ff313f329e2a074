from alerting.conditions import evaluate_condition, matches_suppression
from alerting.models import Alert


def _alert(**tags):
    return Alert(id="a1", title="t", description="", severity="low", source="s", tags=dict(tags))


def test_operators():
    assert evaluate_condition("gt", 15, 10) is True
    assert evaluate_condition("gt", 10, 10) is False
    assert evaluate_condition("lt", 5, 10) is True
    assert evaluate_condition("eq", 10, 10.0) is True
    assert evaluate_condition("gte", 10, 10) is True
    assert evaluate_condition("lte", 11, 10) is False


def test_unknown_operator_and_bad_values_are_false():
    assert evaluate_condition("between", 5, 10) is False
    assert evaluate_condition("", 5, 10) is False
    assert evaluate_condition("gt", "abc", 10) is False
    assert evaluate_condition("gt", None, 10) is False


def test_string_predicate_only_knows_test_marker():
    assert matches_suppression("is test", _alert(test="true")) is True
    assert matches_suppression("is test", _alert(test="false")) is False
    assert matches_suppression("env == staging", _alert(test="true")) is False


def test_callable_predicate_and_failures():
    assert matches_suppression(lambda a: a.tags.get("env") == "dev", _alert(env="dev")) is True

    def broken(alert):
        raise KeyError("nope")

    assert matches_suppression(broken, _alert()) is False
    assert matches_suppression(42, _alert()) is False
