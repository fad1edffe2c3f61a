"""Tests for backend error classification."""

import pytest

from query_health_checks.error_classifier import (
    TIMEOUT_MESSAGE,
    ErrorClass,
    ErrorClassifier,
    build_patterns,
)


@pytest.fixture
def classifier() -> ErrorClassifier:
    return ErrorClassifier()


class TestClassify:
    def test_no_error(self, classifier):
        assert classifier.classify(None) is None

    def test_sentinel_is_timeout(self, classifier):
        assert classifier.classify(TIMEOUT_MESSAGE) == ErrorClass.TIMEOUT

    @pytest.mark.parametrize(
        "error",
        [
            "PG::ConnectionBad: could not connect to server",
            "server closed the connection unexpectedly",
            "consuming input failed: server closed the connection unexpectedly",
            "the connection is closed",
            "DPY-4011: the database or network closed the connection",
            "ORA-03113: end-of-file on communication channel",
            "Lost connection to MySQL server during query",
            "Cannot operate on a closed database.",
        ],
    )
    def test_connection_lost(self, classifier, error):
        assert classifier.classify(error) == ErrorClass.CONNECTION_LOST

    def test_connection_phrase_must_be_a_prefix(self, classifier):
        error = 'column "the connection is closed" does not exist'
        assert classifier.classify(error) == ErrorClass.TERMINAL

    @pytest.mark.parametrize(
        "error",
        [
            'relation "orders" does not exist',
            "ORA-00942: table or view does not exist",
            "division by zero",
        ],
    )
    def test_terminal(self, classifier, error):
        assert classifier.classify(error) == ErrorClass.TERMINAL

    def test_raw_timeout_text_is_not_the_sentinel(self, classifier):
        # Data sources normalize timeouts before the runner classifies them
        assert classifier.classify("canceling statement due to statement timeout") == ErrorClass.TERMINAL


class TestTimeoutVocabulary:
    @pytest.mark.parametrize(
        "error",
        [
            "canceling statement due to statement timeout",
            "Query cancelled on user's request",
            "Query canceled on user's request",
            "system requested abort",
            "Query execution was interrupted, maximum statement execution time exceeded",
            "DPY-4024: call timeout of 1000 ms exceeded",
            "interrupted",
        ],
    )
    def test_backend_timeouts(self, classifier, error):
        assert classifier.is_timeout_text(error)

    def test_other_errors(self, classifier):
        assert not classifier.is_timeout_text("syntax error")
        assert not classifier.is_timeout_text(None)

    def test_sqlite_interrupt_must_match_exactly(self, classifier):
        assert not classifier.is_timeout_text("ORA-01013: user requested cancel, operation interrupted")
        assert not classifier.is_timeout_text("could not receive data: interrupted system call")


class TestExtending:
    def test_with_patterns_adds_entries(self, classifier):
        extended = classifier.with_patterns(
            build_patterns(timeout=["Query exceeded maximum time limit"], connection=["Broken pipe"])
        )

        assert extended.is_timeout_text("Query exceeded maximum time limit of 30m")
        assert extended.classify("Broken pipe (os error 32)") == ErrorClass.CONNECTION_LOST
        # The base classifier keeps its own table
        assert not classifier.is_timeout_text("Query exceeded maximum time limit of 30m")
        assert len(extended.patterns) == len(classifier.patterns) + 2
