import json
import logging

from alerting.logging_config import ContextTextFormatter, JsonFormatter
from alerting.rate_limit import RateLimiter, TokenBucket


def _record(**extra):
    record = logging.LogRecord("alerting.service", logging.INFO, __file__, 1, "alert %s created", ("a1",), None)
    for k, v in extra.items():
        setattr(record, k, v)
    return record


def test_json_formatter_carries_alert_context():
    payload = json.loads(JsonFormatter().format(_record(alert_id="a1", channel_id="ops")))
    assert payload["msg"] == "alert a1 created"
    assert payload["level"] == "INFO"
    assert payload["alert_id"] == "a1"
    assert payload["channel_id"] == "ops"


def test_text_formatter_appends_context_only_when_present():
    fmt = ContextTextFormatter()
    assert fmt.format(_record(alert_id="a1")).endswith("alert a1 created [alert_id=a1]")
    assert fmt.format(_record()).endswith("alert a1 created")


def test_token_bucket_refills_with_clock():
    now = [0.0]
    bucket = TokenBucket(rate_per_minute=60, burst=2, clock=lambda: now[0])
    assert bucket.allow() and bucket.allow()
    assert not bucket.allow()
    now[0] += 1.0
    assert bucket.allow()
    assert not bucket.allow()


def test_disabled_limiter_always_allows():
    limiter = RateLimiter(per_minute=1, burst=1, enabled=False)
    assert all(limiter.check("10.0.0.1") for _ in range(5))
    enabled = RateLimiter(per_minute=1, burst=1, enabled=True)
    assert enabled.check("10.0.0.1")
    assert not enabled.check("10.0.0.1")
    assert enabled.check("10.0.0.2")
