"""Unit tests for Expiration, CallSettings merging and CallOptions conversion."""

from datetime import datetime, timedelta, timezone

import pytest
from hypothesis import given, strategies as st
from pydantic import ValidationError

from callgate_core.config import settings as config
from callgate_core.runtime.cancellation import CancellationToken
from callgate_core.runtime.retry import RetryPolicy
from callgate_core.runtime.settings import CallSettings, Expiration, merge
from callgate_core.runtime.testing import FakeClock


class TestExpiration:
    """Tests for timeout/deadline expirations."""

    def test_from_timeout_accepts_timedelta(self):
        assert Expiration.from_timeout(timedelta(seconds=3)).timeout == 3.0

    def test_timeout_and_deadline_are_exclusive(self):
        with pytest.raises(ValidationError):
            Expiration(timeout=1.0, deadline=datetime(2020, 1, 1, tzinfo=timezone.utc))

    def test_naive_deadline_rejected(self):
        with pytest.raises(ValidationError):
            Expiration.from_deadline(datetime(2020, 1, 1))

    def test_negative_timeout_rejected(self):
        with pytest.raises(ValidationError):
            Expiration.from_timeout(-1)

    def test_calculate_deadline(self):
        clock = FakeClock()
        deadline = clock.now() + timedelta(seconds=10)

        assert Expiration.from_timeout(5).calculate_deadline(clock) == clock.now() + timedelta(seconds=5)
        assert Expiration.from_deadline(deadline).calculate_deadline(clock) == deadline
        assert Expiration().calculate_deadline(clock) is None
        assert Expiration().is_unbounded is True


class TestCallSettingsConstruction:
    """Tests for factories and copy-with helpers."""

    def test_headers_are_lowercased(self):
        settings = CallSettings(headers={"X-Goog-Request-Params": "name=a"})

        assert settings.headers == {"x-goog-request-params": "name=a"}

    def test_factories(self):
        token = CancellationToken()
        policy = RetryPolicy()

        assert CallSettings.from_timeout(2).expiration.timeout == 2.0
        assert CallSettings.from_cancellation(token).cancellation is token
        assert CallSettings.from_header("A", "1").headers == {"a": "1"}
        assert CallSettings.from_user_agent("ua/1").user_agent == "ua/1"
        assert CallSettings.from_retry(policy).retry is policy

    def test_with_helpers_do_not_mutate(self):
        settings = CallSettings.from_header("a", "1")

        updated = settings.with_header("B", "2").with_user_agent("x/1").with_user_agent("y/2")

        assert settings.headers == {"a": "1"}
        assert settings.user_agent is None
        assert updated.headers == {"a": "1", "b": "2"}
        assert updated.user_agent == "x/1 y/2"

    def test_is_frozen(self):
        settings = CallSettings()
        with pytest.raises(ValidationError):
            settings.user_agent = "changed"


class TestMerge:
    """Tests for merging per-call overrides onto base settings."""

    def test_merge_with_none_returns_base(self):
        base = CallSettings.from_timeout(5)

        assert base.merge(None) is base
        assert merge(base, None) is base
        assert merge(None, base) is base
        assert merge(None, None) is None

    def test_override_wins_for_expiration_and_retry(self):
        base_policy = RetryPolicy(max_attempts=2)
        override_policy = RetryPolicy(max_attempts=9)
        base = CallSettings(expiration=Expiration.from_timeout(30), retry=base_policy)
        override = CallSettings(expiration=Expiration.from_timeout(1), retry=override_policy)

        merged = base.merge(override)

        assert merged.expiration.timeout == 1.0
        assert merged.retry is override_policy

    def test_unset_override_fields_fall_back_to_base(self):
        policy = RetryPolicy()
        base = CallSettings(expiration=Expiration.from_timeout(30), retry=policy, user_agent="base/1")

        merged = base.merge(CallSettings())

        assert merged.expiration.timeout == 30.0
        assert merged.retry is policy
        assert merged.user_agent == "base/1"

    def test_headers_union_with_override_winning(self):
        base = CallSettings(headers={"A": "1", "b": "2"})
        override = CallSettings(headers={"a": "3", "c": "4"})

        merged = base.merge(override)

        assert merged.headers == {"a": "3", "b": "2", "c": "4"}
        assert base.headers == {"a": "1", "b": "2"}

    def test_user_agents_concatenate(self):
        merged = CallSettings.from_user_agent("gapic/1").merge(CallSettings.from_user_agent("app/2"))

        assert merged.user_agent == "gapic/1 app/2"

    def test_cancellation_fires_from_either_side(self):
        base_token = CancellationToken()
        override_token = CancellationToken()

        merged = CallSettings.from_cancellation(base_token).merge(CallSettings.from_cancellation(override_token))
        base_token.cancel()

        assert merged.cancellation.is_cancelled is True
        assert override_token.is_cancelled is False

    def test_merge_is_associative(self):
        a = CallSettings(expiration=Expiration.from_timeout(1), headers={"x": "a"}, user_agent="a")
        b = CallSettings(headers={"x": "b", "y": "b"}, user_agent="b", retry=RetryPolicy(max_attempts=2))
        c = CallSettings(expiration=Expiration.from_timeout(3), headers={"z": "c"}, user_agent="c")

        left = a.merge(b).merge(c)
        right = a.merge(b.merge(c))

        assert left.expiration == right.expiration
        assert left.headers == right.headers == {"x": "b", "y": "b", "z": "c"}
        assert left.user_agent == right.user_agent == "a b c"
        assert left.retry == right.retry


class TestToCallOptions:
    """Tests for converting settings to transport options."""

    def test_unbounded_settings(self):
        options = CallSettings().to_call_options(FakeClock())

        assert options.deadline is None
        assert options.timeout is None
        assert options.metadata == ()

    def test_timeout_becomes_deadline(self):
        clock = FakeClock()

        options = CallSettings.from_timeout(5).to_call_options(clock)

        assert options.deadline == clock.now() + timedelta(seconds=5)
        assert options.timeout == pytest.approx(5.0)

    def test_passed_deadline_gives_zero_timeout(self):
        clock = FakeClock()
        settings = CallSettings.from_deadline(clock.now() + timedelta(seconds=1))
        clock.advance(3)

        assert settings.to_call_options(clock).timeout == 0.0

    def test_metadata_includes_headers_and_user_agent(self):
        token = CancellationToken()
        settings = CallSettings(headers={"a": "1"}, user_agent="gapic/1 app/2", cancellation=token)

        options = settings.to_call_options(FakeClock())

        assert options.metadata == (("a", "1"), (config.USER_AGENT_HEADER.lower(), "gapic/1 app/2"))
        assert options.cancellation is token

    def test_explicit_user_agent_header_is_extended_not_duplicated(self):
        key = config.USER_AGENT_HEADER
        settings = CallSettings(headers={key.upper(): "custom/1", "a": "1"}, user_agent="gapic/1")

        options = settings.to_call_options(FakeClock())

        assert options.metadata == ((key.lower(), "custom/1 gapic/1"), ("a", "1"))
        assert [k for k, _ in options.metadata].count(key.lower()) == 1

    def test_user_agent_header_without_user_agent_kept_as_is(self):
        settings = CallSettings.from_header(config.USER_AGENT_HEADER, "custom/1")

        assert settings.to_call_options(FakeClock()).metadata == ((config.USER_AGENT_HEADER.lower(), "custom/1"),)


header_names = st.text(alphabet="abcXYZ-", min_size=1, max_size=4)
user_agents = st.none() | st.text(alphabet="abc/1.", min_size=1, max_size=6)
expirations = st.none() | st.floats(min_value=0, max_value=100).map(Expiration.from_timeout)
retries = st.none() | st.integers(min_value=1, max_value=5).map(lambda n: RetryPolicy(max_attempts=n))


@st.composite
def call_settings(draw):
    return CallSettings(
        expiration=draw(expirations),
        headers=draw(st.dictionaries(header_names, st.text(max_size=3), max_size=3)),
        user_agent=draw(user_agents),
        retry=draw(retries),
    )


class TestMergeProperties:
    """Property tests: merge semantics hold for any pair of settings."""

    @given(base=call_settings(), override=call_settings())
    def test_field_rules(self, base, override):
        base_headers = dict(base.headers)

        merged = base.merge(override)

        expected_expiration = override.expiration if override.expiration is not None else base.expiration
        assert merged.expiration == expected_expiration
        expected_retry = override.retry if override.retry is not None else base.retry
        assert merged.retry == expected_retry
        assert merged.headers == {**base.headers, **override.headers}
        parts = [p for p in (base.user_agent, override.user_agent) if p]
        assert merged.user_agent == (" ".join(parts) if parts else None)
        assert base.headers == base_headers

    @given(a=call_settings(), b=call_settings(), c=call_settings())
    def test_associative(self, a, b, c):
        left = a.merge(b).merge(c)
        right = a.merge(b.merge(c))

        assert left.expiration == right.expiration
        assert left.headers == right.headers
        assert left.user_agent == right.user_agent
        assert left.retry == right.retry
