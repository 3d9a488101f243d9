"""Tests for traffic classification from request headers."""

import pytest

from isolation_service.traffic import (
    DEFAULT_TEST_RUN_ID,
    TEST_RUN_ID_HEADER,
    TRAFFIC_TYPE_HEADER,
    TrafficClassification,
    TrafficKind,
)


class TestFromHeaders:
    def test_no_headers_is_production(self):
        classification = TrafficClassification.from_headers({})

        assert classification.kind is TrafficKind.PRODUCTION
        assert classification.run_id == DEFAULT_TEST_RUN_ID
        assert not classification.is_test

    def test_sentinel_is_test(self):
        classification = TrafficClassification.from_headers(
            {TRAFFIC_TYPE_HEADER: "LOAD_TEST", TEST_RUN_ID_HEADER: "run-42"}
        )

        assert classification.is_test
        assert classification.run_id == "run-42"

    def test_lowercase_header_names(self):
        classification = TrafficClassification.from_headers({"x-traffic-type": "LOAD_TEST", "x-test-run-id": "run-7"})

        assert classification.is_test
        assert classification.run_id == "run-7"

    @pytest.mark.parametrize("value", ["PRODUCTION", "load_test", "LOADTEST", "", "TEST", "1"])
    def test_unrecognised_values_are_production(self, value):
        classification = TrafficClassification.from_headers({TRAFFIC_TYPE_HEADER: value})

        assert classification.kind is TrafficKind.PRODUCTION

    def test_surrounding_whitespace_is_ignored(self):
        assert TrafficClassification.from_headers({TRAFFIC_TYPE_HEADER: "  LOAD_TEST "}).is_test

    def test_missing_run_id_is_generated_for_test(self):
        classification = TrafficClassification.from_headers({TRAFFIC_TYPE_HEADER: "LOAD_TEST"})

        assert classification.run_id.startswith("test-run-")

    def test_run_id_ignored_for_production(self):
        classification = TrafficClassification.from_headers({TEST_RUN_ID_HEADER: "run-42"})

        assert classification.run_id == DEFAULT_TEST_RUN_ID


class TestClassificationValue:
    def test_is_immutable(self):
        classification = TrafficClassification.for_test("run-1")

        with pytest.raises(AttributeError):
            classification.kind = TrafficKind.PRODUCTION

    def test_production_always_uses_placeholder(self):
        assert TrafficClassification(TrafficKind.PRODUCTION, "run-9").run_id == DEFAULT_TEST_RUN_ID

    def test_blank_test_run_id_is_generated(self):
        assert TrafficClassification(TrafficKind.TEST, "  ").run_id.startswith("test-run-")

    def test_metadata_for_test(self):
        assert TrafficClassification.for_test("run-42").metadata() == {
            TRAFFIC_TYPE_HEADER: "LOAD_TEST",
            TEST_RUN_ID_HEADER: "run-42",
        }

    def test_metadata_omits_placeholder_run_id(self):
        assert TrafficClassification.production().metadata() == {TRAFFIC_TYPE_HEADER: "PRODUCTION"}
