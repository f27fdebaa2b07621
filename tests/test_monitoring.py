"""
Tests for the monitoring package: metrics, structured logging and redaction.
"""

import json
import logging
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from monitoring import LoggingContext, MetricsCollector
from monitoring.logging import (
    JSONFormatter,
    clear_request_context,
    get_request_context,
    redact_sensitive_data,
    redact_string,
    set_request_context,
)
from monitoring.middleware import _normalize_path


def make_record(msg, level=logging.INFO, **extra):
    record = logging.LogRecord("royalty_distributor", level, __file__, 1, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestMetricsCollector:
    """Tests for counters, gauges and histograms."""

    def test_counters_with_labels(self):
        collector = MetricsCollector()
        collector.increment("royalty_rejections_total", labels={"operation": "distribute", "code": "101"})
        collector.increment("royalty_rejections_total", labels={"code": "101", "operation": "distribute"})

        assert collector.get_counter(
            "royalty_rejections_total", labels={"operation": "distribute", "code": "101"}
        ) == 2
        assert collector.get_counter("royalty_rejections_total") == 0

    def test_gauges(self):
        collector = MetricsCollector()
        collector.increment_gauge("http_requests_active")
        collector.increment_gauge("http_requests_active")
        collector.decrement_gauge("http_requests_active")

        assert collector.get_gauge("http_requests_active") == 1.0

    def test_record_ledger_state(self, ledger):
        collector = MetricsCollector()
        ledger.distribute("deployer", 1, 1000)
        ledger.pause("deployer")

        collector.record_ledger_state(ledger.get_statistics())

        assert collector.get_gauge("ledger_paused") == 1.0
        assert collector.get_gauge("ledger_payment_counter") == 1.0
        assert collector.get_gauge("ledger_songs") == 1.0

    def test_timer_records_histogram(self):
        collector = MetricsCollector()
        with collector.timer("royalty_distribution_duration_ms"):
            pass

        histogram = collector.get_all()["histograms"]["royalty_distribution_duration_ms"]["_total"]
        assert histogram["count"] == 1

    def test_prometheus_export(self):
        collector = MetricsCollector()
        collector.increment("royalty_distributions_total", 3)
        collector.increment("royalty_rejections_total", labels={"operation": "pause", "code": "100"})
        collector.timing("royalty_distribution_duration_ms", 2.0)

        text = collector.to_prometheus()

        assert "# TYPE songsplit_royalty_distributions_total counter" in text
        assert "songsplit_royalty_distributions_total 3" in text
        assert 'songsplit_royalty_rejections_total{code="100",operation="pause"} 1' in text
        assert 'songsplit_royalty_distribution_duration_ms_bucket{le="5"} 1' in text
        assert "songsplit_royalty_distribution_duration_ms_count 1" in text

    def test_reset(self):
        collector = MetricsCollector()
        collector.increment("royalty_distributions_total")
        collector.reset()

        assert collector.get_all()["counters"] == {}


class TestRedaction:
    """Tests for sensitive data redaction."""

    def test_api_key_in_message(self):
        assert redact_string("api_key=abc123 accepted") == "api_key=[REDACTED] accepted"

    def test_bearer_token(self):
        assert redact_string("Authorization: Bearer xyz.abc") == "Authorization: Bearer [REDACTED]"

    def test_stacks_principal_shortened(self):
        principal = "SP2J6ZY48GV1EZ5V2V5RB9MP66SW86PYKKNRV9EJ7"
        assert redact_string(f"caller {principal}") == "caller SP2J6Z...9EJ7"

    def test_plain_identities_untouched(self):
        assert redact_string("wallet_1 received 600") == "wallet_1 received 600"

    def test_redacted_fields(self):
        data = {"X-API-Key": "secret-value", "nested": [{"token": "t"}], "amount": 1000}

        assert redact_sensitive_data(data) == {
            "X-API-Key": "[REDACTED]",
            "nested": [{"token": "[REDACTED]"}],
            "amount": 1000,
        }


class TestStructuredLogging:
    """Tests for the JSON formatter and request context."""

    def teardown_method(self):
        clear_request_context()

    def test_json_formatter_includes_extras(self):
        record = make_record("Distributed 1000 for song 1 as payment 0", caller="deployer", residual=0)

        entry = json.loads(JSONFormatter().format(record))

        assert entry["level"] == "INFO"
        assert entry["logger"] == "royalty_distributor"
        assert entry["caller"] == "deployer"
        assert entry["residual"] == 0
        assert "location" not in entry

    def test_json_formatter_warning_location(self):
        entry = json.loads(JSONFormatter().format(make_record("Unauthorized pause attempt", logging.WARNING)))
        assert entry["location"]["line"] == 1

    def test_json_formatter_redacts(self):
        entry = json.loads(JSONFormatter().format(make_record("token=abc", api_key="k")))

        assert entry["message"] == "token=[REDACTED]"
        assert entry["api_key"] == "[REDACTED]"

    def test_request_context_in_output(self):
        set_request_context(request_id="abc123")

        entry = json.loads(JSONFormatter().format(make_record("hello")))
        assert entry["context"] == {"request_id": "abc123"}

    def test_logging_context_restores_previous(self):
        set_request_context(request_id="outer")

        with LoggingContext(command="distribute"):
            assert get_request_context()["command"] == "distribute"

        assert get_request_context() == {"request_id": "outer"}


class TestPathNormalization:
    """Tests for bounding metric label cardinality."""

    def test_ids_collapsed(self):
        assert _normalize_path("/royalties/history/1/42") == "/royalties/history/:id/:id"

    def test_contributor_balances(self):
        assert _normalize_path("/royalties/balances/1/wallet_1") == "/royalties/balances/:id/:contributor"
        assert _normalize_path("/royalties/balances/wallet_1") == "/royalties/balances/:contributor"

    def test_static_paths(self):
        assert _normalize_path("/health/ready") == "/health/ready"
        assert _normalize_path("/") == "/"
