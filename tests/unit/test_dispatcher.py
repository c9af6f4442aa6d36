"""Tests for RequestDispatcher."""

import random
from unittest.mock import Mock

import pytest

from parley.credentials import CredentialPool, fingerprint
from parley.dispatcher import RequestDispatcher
from parley.errors import ConfigurationError
from parley.models import USER, Turn
from parley.providers.base import (
    AllCredentialsExhaustedError,
    AuthenticationError,
    FatalError,
    RateLimitError,
    TransientError,
)
from tests.fixtures import ScriptedProvider


def make_pool(keys, start=0):
    """Pool whose random start is pinned to ``start``."""
    rng = Mock(spec=random.Random)
    rng.randrange.return_value = start
    return CredentialPool(tuple(keys), rng=rng)


@pytest.fixture
def turn():
    return Turn(role=USER, content="Hi")


class TestRotation:
    """Tests for rotation on rate limits."""

    def test_success_first_attempt(self, turn):
        provider = ScriptedProvider(["hello"])
        dispatcher = RequestDispatcher(provider, make_pool(["k1", "k2"]))

        result = dispatcher.dispatch([], turn)

        assert result.turn.content == "hello"
        assert result.attempts == 1
        assert result.pool_size == 2
        assert result.credential == fingerprint("k1")

    def test_rate_limited_then_success(self, turn):
        provider = ScriptedProvider([RateLimitError("429"), "hello"])
        dispatcher = RequestDispatcher(provider, make_pool(["k1", "k2"]))

        result = dispatcher.dispatch([], turn)

        assert result.turn.content == "hello"
        assert result.attempts == 2
        assert provider.credentials_used == ["k1", "k2"]
        assert result.credential == fingerprint("k2")

    def test_single_key_rate_limited_exhausts(self, turn):
        provider = ScriptedProvider([RateLimitError("429")])
        dispatcher = RequestDispatcher(provider, make_pool(["k1"]))

        with pytest.raises(AllCredentialsExhaustedError) as exc_info:
            dispatcher.dispatch([], turn)

        assert exc_info.value.attempts == 1
        assert exc_info.value.pool_size == 1
        assert isinstance(exc_info.value.last_error, RateLimitError)

    @pytest.mark.parametrize("size", [1, 2, 3, 5])
    @pytest.mark.parametrize("offset", [0, 1, 4])
    def test_rotation_visits_every_key_once(self, turn, size, offset):
        keys = [f"k{i}" for i in range(size)]
        start = offset % size
        provider = ScriptedProvider([RateLimitError("429")])
        dispatcher = RequestDispatcher(provider, make_pool(keys, start=start))

        with pytest.raises(AllCredentialsExhaustedError) as exc_info:
            dispatcher.dispatch([], turn)

        used = provider.credentials_used
        assert len(used) == size
        assert set(used) == set(keys)
        assert used[0] == keys[start]
        assert exc_info.value.attempts == size
        assert exc_info.value.pool_size == size

    def test_rotation_wraps_from_last_key(self, turn):
        provider = ScriptedProvider([RateLimitError("429"), "ok"])
        dispatcher = RequestDispatcher(provider, make_pool(["k1", "k2", "k3"], start=2))

        dispatcher.dispatch([], turn)

        assert provider.credentials_used == ["k3", "k1"]

    def test_preferred_key_starts_dispatch(self, turn):
        provider = ScriptedProvider(["ok"])
        dispatcher = RequestDispatcher(provider, make_pool(["k1", "k2", "k3"]))

        dispatcher.dispatch([], turn, preferred=fingerprint("k2"))

        assert provider.credentials_used == ["k2"]


class TestFatalErrors:
    """Tests for errors that stop the dispatch."""

    @pytest.mark.parametrize(
        "error", [AuthenticationError("401 bad key"), FatalError("400 bad request")]
    )
    def test_fatal_error_aborts_without_rotation(self, turn, error):
        provider = ScriptedProvider([error, "never"])
        dispatcher = RequestDispatcher(provider, make_pool(["k1", "k2", "k3"]))

        with pytest.raises(type(error)) as exc_info:
            dispatcher.dispatch([], turn)

        assert exc_info.value is error
        assert exc_info.value.attempts == 1
        assert provider.credentials_used == ["k1"]

    def test_auth_error_after_rotation_stops_immediately(self, turn):
        provider = ScriptedProvider(
            [RateLimitError("429"), AuthenticationError("403"), "never"]
        )
        dispatcher = RequestDispatcher(provider, make_pool(["k1", "k2", "k3"]))

        with pytest.raises(AuthenticationError) as exc_info:
            dispatcher.dispatch([], turn)

        assert exc_info.value.attempts == 2
        assert provider.credentials_used == ["k1", "k2"]


class TestTransientErrors:
    """Tests for bounded same-key retries."""

    def test_transient_retried_on_same_key(self, turn):
        provider = ScriptedProvider([TransientError("timeout"), TransientError("502"), "ok"])
        dispatcher = RequestDispatcher(provider, make_pool(["k1", "k2"]), transient_retries=2)

        result = dispatcher.dispatch([], turn)

        assert result.attempts == 3
        assert provider.credentials_used == ["k1", "k1", "k1"]

    def test_transient_rotates_after_retries(self, turn):
        provider = ScriptedProvider([TransientError("timeout")] * 3 + ["ok"])
        dispatcher = RequestDispatcher(provider, make_pool(["k1", "k2"]), transient_retries=2)

        result = dispatcher.dispatch([], turn)

        assert provider.credentials_used == ["k1", "k1", "k1", "k2"]
        assert result.attempts == 4

    def test_transient_everywhere_exhausts(self, turn):
        provider = ScriptedProvider([TransientError("timeout")])
        dispatcher = RequestDispatcher(provider, make_pool(["k1", "k2"]), transient_retries=1)

        with pytest.raises(AllCredentialsExhaustedError) as exc_info:
            dispatcher.dispatch([], turn)

        assert exc_info.value.attempts == 4
        assert provider.credentials_used == ["k1", "k1", "k2", "k2"]


class TestWithoutCredentials:
    """Tests for providers that need no key."""

    def test_no_credential_passed(self, turn):
        provider = ScriptedProvider(["ok"], requires_credentials=False)
        dispatcher = RequestDispatcher(provider)

        result = dispatcher.dispatch([], turn)

        assert provider.credentials_used == [None]
        assert result.credential is None
        assert result.pool_size == 1

    def test_pool_ignored_for_local_provider(self, turn):
        provider = ScriptedProvider(["ok"], requires_credentials=False)
        dispatcher = RequestDispatcher(provider, make_pool(["k1"]))

        dispatcher.dispatch([], turn)

        assert provider.credentials_used == [None]

    def test_rate_limited_without_credentials_exhausts(self, turn):
        provider = ScriptedProvider([RateLimitError("429")], requires_credentials=False)
        dispatcher = RequestDispatcher(provider)

        with pytest.raises(AllCredentialsExhaustedError) as exc_info:
            dispatcher.dispatch([], turn)

        assert exc_info.value.attempts == 1
        assert exc_info.value.pool_size == 1

    def test_missing_pool_for_remote_provider(self):
        with pytest.raises(ConfigurationError):
            RequestDispatcher(ScriptedProvider(["ok"]))


class TestObservability:
    """Tests for attempt events and jitter."""

    def test_on_attempt_reports_progress(self, turn):
        events = []
        provider = ScriptedProvider([RateLimitError("429"), RateLimitError("429"), "ok"])
        dispatcher = RequestDispatcher(
            provider, make_pool(["k1", "k2", "k3"]), on_attempt=events.append
        )

        dispatcher.dispatch([], turn)

        assert [(e.attempt, e.position, e.pool_size) for e in events] == [(1, 1, 3), (2, 2, 3)]
        assert all(e.will_retry for e in events)

    def test_final_event_marks_no_retry(self, turn):
        events = []
        provider = ScriptedProvider([RateLimitError("429")])
        dispatcher = RequestDispatcher(provider, make_pool(["k1", "k2"]), on_attempt=events.append)

        with pytest.raises(AllCredentialsExhaustedError):
            dispatcher.dispatch([], turn)

        assert [e.will_retry for e in events] == [True, False]

    def test_no_sleep_without_jitter(self, turn):
        sleep = Mock()
        provider = ScriptedProvider([RateLimitError("429"), "ok"])
        dispatcher = RequestDispatcher(provider, make_pool(["k1", "k2"]), sleep=sleep)

        dispatcher.dispatch([], turn)

        sleep.assert_not_called()

    def test_jitter_bounded(self, turn):
        sleep = Mock()
        provider = ScriptedProvider([RateLimitError("429"), "ok"])
        dispatcher = RequestDispatcher(
            provider, make_pool(["k1", "k2"]), jitter=0.5, sleep=sleep
        )

        dispatcher.dispatch([], turn)

        sleep.assert_called_once()
        assert 0 <= sleep.call_args[0][0] <= 0.5

    def test_history_passed_through(self, turn):
        history = [Turn(role=USER, content="earlier")]
        provider = ScriptedProvider(["ok"])
        dispatcher = RequestDispatcher(provider, make_pool(["k1"]))

        dispatcher.dispatch(history, turn)

        assert provider.describe_history() == [history[0], turn]
