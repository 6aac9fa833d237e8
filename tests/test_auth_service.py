"""Tests for the authentication orchestrator.

Covers:
- Challenge request ordering (validation, block check, user creation, issue)
- Verification ordering (validation, expiry, match, lockout bookkeeping)
- Lockout cycle and reset on success
- Token lookup of the current user
"""

from datetime import timedelta

import pytest

from conftest import wrong_code
from otpgate.config import Settings
from otpgate.service.auth import (
    AuthFailure,
    AuthService,
    Authenticated,
    ChallengeIssued,
    ErrorCode,
)


def _snapshot(store):
    return (dict(store.users), dict(store.otps), dict(store.lockouts))


class TestRequestChallenge:
    def test_issues_code_and_creates_user(self, auth_service, store, delivery, clock):
        result = auth_service.request_challenge("a@b.com")

        assert isinstance(result, ChallengeIssued)
        assert result.expires_in_seconds == 300
        assert result.expires_at == clock.now + timedelta(minutes=5)
        user = store.get_user("a@b.com")
        assert user.created_at == clock.now
        assert user.last_login == clock.now
        assert delivery.last_code("a@b.com") == store.get_otp("a@b.com").code

    def test_result_never_carries_code(self, auth_service):
        result = auth_service.request_challenge("a@b.com")
        assert not hasattr(result, "code")

    @pytest.mark.parametrize("identifier", ["", "nope", "a@b", "12345", None, "a@b.com "])
    def test_invalid_identifier_has_no_side_effects(self, auth_service, store, delivery, identifier):
        before = _snapshot(store)
        result = auth_service.request_challenge(identifier)

        assert isinstance(result, AuthFailure)
        assert result.code is ErrorCode.VALIDATION_ERROR
        assert _snapshot(store) == before
        assert delivery.sent == []

    def test_existing_user_keeps_created_at(self, auth_service, store, clock):
        auth_service.request_challenge("a@b.com")
        created = store.get_user("a@b.com").created_at
        clock.advance(minutes=1)
        auth_service.request_challenge("a@b.com")

        assert store.get_user("a@b.com").created_at == created

    def test_reissue_invalidates_first_code(self, auth_service, delivery):
        auth_service.request_challenge("a@b.com")
        first = delivery.last_code("a@b.com")
        auth_service.request_challenge("a@b.com")
        second = delivery.last_code("a@b.com")
        if first == second:
            pytest.skip("both draws produced the same code")

        assert auth_service.verify_challenge("a@b.com", first).code is ErrorCode.INVALID_CODE
        assert isinstance(auth_service.verify_challenge("a@b.com", second), Authenticated)


class TestVerifyChallenge:
    def test_success_returns_token_and_user(self, auth_service, delivery, clock):
        auth_service.request_challenge("a@b.com")
        clock.advance(seconds=30)
        result = auth_service.verify_challenge("a@b.com", delivery.last_code("a@b.com"))

        assert isinstance(result, Authenticated)
        assert result.user.identifier == "a@b.com"
        assert result.user.last_login == clock.now
        assert auth_service.tokens.verify(result.token) == "a@b.com"

    @pytest.mark.parametrize(
        "identifier, code",
        [("bad", "123456"), ("a@b.com", "12345"), ("a@b.com", "abcdef"), ("a@b.com", None)],
    )
    def test_malformed_input(self, auth_service, store, identifier, code):
        auth_service.request_challenge("a@b.com")
        result = auth_service.verify_challenge(identifier, code)

        assert result.code is ErrorCode.VALIDATION_ERROR
        assert store.get_lockout("a@b.com") is None

    def test_no_challenge_is_expired(self, auth_service, store):
        result = auth_service.verify_challenge("a@b.com", "123456")

        assert result.code is ErrorCode.OTP_EXPIRED
        assert store.get_lockout("a@b.com") is None

    def test_expired_at_deadline_regardless_of_code(self, auth_service, delivery, store, clock):
        auth_service.request_challenge("a@b.com")
        code = delivery.last_code("a@b.com")
        clock.advance(minutes=5)

        assert auth_service.verify_challenge("a@b.com", code).code is ErrorCode.OTP_EXPIRED
        assert auth_service.verify_challenge("a@b.com", wrong_code(code)).code is ErrorCode.OTP_EXPIRED
        assert store.get_lockout("a@b.com") is None

    def test_valid_one_second_before_deadline(self, auth_service, delivery, clock):
        auth_service.request_challenge("a@b.com")
        clock.advance(minutes=4, seconds=59)
        result = auth_service.verify_challenge("a@b.com", delivery.last_code("a@b.com"))
        assert isinstance(result, Authenticated)

    def test_wrong_code_does_not_invalidate_challenge(self, auth_service, delivery):
        auth_service.request_challenge("a@b.com")
        code = delivery.last_code("a@b.com")
        auth_service.verify_challenge("a@b.com", wrong_code(code))

        assert isinstance(auth_service.verify_challenge("a@b.com", code), Authenticated)


class TestLockoutCycle:
    def test_attempts_remaining_sequence_and_block(self, auth_service, delivery):
        auth_service.request_challenge("a@b.com")
        bad = wrong_code(delivery.last_code("a@b.com"))

        remaining = [
            auth_service.verify_challenge("a@b.com", bad).attempts_remaining
            for _ in range(3)
        ]

        assert remaining == [2, 1, 0]
        assert auth_service.lockout.is_blocked("a@b.com")

    def test_fourth_wrong_code_reports_zero(self, auth_service, delivery):
        auth_service.request_challenge("a@b.com")
        bad = wrong_code(delivery.last_code("a@b.com"))
        for _ in range(3):
            auth_service.verify_challenge("a@b.com", bad)

        result = auth_service.verify_challenge("a@b.com", bad)
        assert result.code is ErrorCode.INVALID_CODE
        assert result.attempts_remaining == 0

    def test_blocked_request_is_rate_limited(self, auth_service, delivery, store, clock):
        auth_service.request_challenge("a@b.com")
        code = delivery.last_code("a@b.com")
        for _ in range(3):
            auth_service.verify_challenge("a@b.com", wrong_code(code))
        clock.advance(seconds=1)

        result = auth_service.request_challenge("a@b.com")

        assert result.code is ErrorCode.RATE_LIMITED
        assert result.remaining_seconds == 599
        assert result.blocked_until == clock.now + timedelta(seconds=599)
        # the challenge from before the block was not replaced
        assert store.get_otp("a@b.com").code == code

    def test_existing_code_still_verifies_during_block(self, auth_service, delivery):
        auth_service.request_challenge("a@b.com")
        code = delivery.last_code("a@b.com")
        for _ in range(3):
            auth_service.verify_challenge("a@b.com", wrong_code(code))

        assert isinstance(auth_service.verify_challenge("a@b.com", code), Authenticated)
        assert not auth_service.lockout.is_blocked("a@b.com")

    def test_request_allowed_once_block_lapses(self, auth_service, delivery, clock):
        auth_service.request_challenge("a@b.com")
        for _ in range(3):
            auth_service.verify_challenge("a@b.com", wrong_code(delivery.last_code("a@b.com")))
        clock.advance(minutes=10)

        assert isinstance(auth_service.request_challenge("a@b.com"), ChallengeIssued)

    def test_success_restarts_cycle(self, auth_service, delivery):
        auth_service.request_challenge("a@b.com")
        code = delivery.last_code("a@b.com")
        auth_service.verify_challenge("a@b.com", wrong_code(code))
        auth_service.verify_challenge("a@b.com", wrong_code(code))
        auth_service.verify_challenge("a@b.com", code)

        assert auth_service.lockout.get_failed_attempts("a@b.com") == 0
        result = auth_service.verify_challenge("a@b.com", wrong_code(code))
        assert result.attempts_remaining == 2

    def test_scenario_from_request_to_block(self, auth_service, delivery):
        issued = auth_service.request_challenge("a@b.com")
        assert issued.expires_in_seconds == 300

        bad = wrong_code(delivery.last_code("a@b.com"))
        results = [auth_service.verify_challenge("a@b.com", bad) for _ in range(3)]
        assert [r.attempts_remaining for r in results] == [2, 1, 0]

        blocked = auth_service.request_challenge("a@b.com")
        assert blocked.code is ErrorCode.RATE_LIMITED
        assert blocked.remaining_seconds == 600


class TestVerifyBlockPolicy:
    def test_enforced_when_enabled(self, store, clock, delivery):
        settings = Settings(jwt_secret="secret-for-tests", enforce_lockout_on_verify=True)
        service = AuthService(store, settings, clock=clock, delivery=delivery)
        service.request_challenge("a@b.com")
        code = delivery.last_code("a@b.com")
        for _ in range(3):
            service.verify_challenge("a@b.com", wrong_code(code))

        result = service.verify_challenge("a@b.com", code)

        assert result.code is ErrorCode.RATE_LIMITED
        assert result.remaining_seconds == 600

    def test_validation_still_precedes_block(self, store, clock, delivery):
        settings = Settings(jwt_secret="secret-for-tests", enforce_lockout_on_verify=True)
        service = AuthService(store, settings, clock=clock, delivery=delivery)
        service.request_challenge("a@b.com")
        for _ in range(3):
            service.verify_challenge("a@b.com", wrong_code(delivery.last_code("a@b.com")))

        assert service.verify_challenge("a@b.com", "12").code is ErrorCode.VALIDATION_ERROR


class TestNormalization:
    def test_distinct_by_default(self, auth_service, store):
        auth_service.request_challenge("User@B.com")
        auth_service.request_challenge("user@b.com")
        assert set(store.users) == {"User@B.com", "user@b.com"}

    def test_normalized_when_enabled(self, store, clock, delivery):
        settings = Settings(jwt_secret="secret-for-tests", normalize_identifiers=True)
        service = AuthService(store, settings, clock=clock, delivery=delivery)
        service.request_challenge(" User@B.com ")

        result = service.verify_challenge("user@b.com", delivery.last_code("user@b.com"))

        assert isinstance(result, Authenticated)
        assert set(store.users) == {"user@b.com"}


class TestCurrentUser:
    def test_token_resolves_user(self, auth_service, delivery):
        auth_service.request_challenge("+12025550123")
        result = auth_service.verify_challenge("+12025550123", delivery.last_code("+12025550123"))

        user = auth_service.get_current_user(result.token)
        assert user.identifier == "+12025550123"

    @pytest.mark.parametrize("token", [None, "", "not-a-token"])
    def test_invalid_token(self, auth_service, token):
        assert auth_service.get_current_user(token).code is ErrorCode.INVALID_TOKEN

    def test_unknown_user_is_invalid_token(self, auth_service):
        token = auth_service.tokens.issue("ghost@b.com")
        assert auth_service.get_current_user(token).code is ErrorCode.INVALID_TOKEN

    def test_expired_token(self, auth_service, delivery, clock):
        auth_service.request_challenge("a@b.com")
        result = auth_service.verify_challenge("a@b.com", delivery.last_code("a@b.com"))
        clock.advance(hours=24)

        assert auth_service.get_current_user(result.token).code is ErrorCode.INVALID_TOKEN


class TestCleanup:
    def test_removes_expired_records(self, auth_service, store, delivery, clock):
        auth_service.request_challenge("a@b.com")
        auth_service.request_challenge("c@d.com")
        for _ in range(3):
            auth_service.verify_challenge("c@d.com", wrong_code(delivery.last_code("c@d.com")))
        clock.advance(minutes=10)

        assert auth_service.cleanup_expired_states() == 3
        assert store.otps == {}
        assert store.lockouts == {}
        # users are never removed
        assert set(store.users) == {"a@b.com", "c@d.com"}

    def test_maybe_cleanup_skips_within_interval(self, auth_service, clock):
        auth_service.request_challenge("a@b.com")
        clock.advance(minutes=10)
        assert auth_service.maybe_cleanup() == 0
