from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock

import jwt
import pytest

from landguard.authentication import LoginOutcome, LoginService, verify_password
from landguard.errors import (
    AccountLocked,
    CaptchaRequired,
    InvalidCredential,
    LoginInProgress,
    StoreUnavailable,
    ValidationError,
)
from landguard.lockout import LockoutController, LockoutState
from landguard.models import InMemoryAttemptLedger

from conftest import PASSWORD, SECRET

EMAIL = "user@example.com"


def read_token(token):
    # Tokens are stamped with the fake clock, so they are long expired in real time.
    return jwt.decode(token, SECRET, algorithms=["HS256"], options={"verify_exp": False})


def fail_login(engine, clock, times, email=EMAIL):
    for _ in range(times):
        engine.check_login(email, "wrong password")
        clock.advance(seconds=30)


def solve(challenge):
    first, second = (int(part) for part in challenge["question"].split(" + "))
    return {"token": challenge["token"], "answer": first + second}


def test_correct_credentials_allow_and_issue_token(engine, worker):
    result = engine.check_login(EMAIL, PASSWORD, source_address="10.0.0.1", user_agent="pytest")
    assert result.outcome == LoginOutcome.ALLOWED
    assert result.identity == worker
    claims = read_token(result.access_token)
    assert claims["sub"] == worker.id
    assert claims["role"] == "FieldWorker"

    [attempt] = engine.lockout.ledger.all_attempts(EMAIL)
    assert attempt.success is True
    assert attempt.source_address == "10.0.0.1"


def test_wrong_password_is_invalid_credential(engine):
    result = engine.check_login(EMAIL, "nope")
    assert result.outcome == LoginOutcome.INVALID_CREDENTIAL
    assert result.failed_count == 1
    with pytest.raises(InvalidCredential):
        result.raise_for_outcome()


def test_unknown_identity_looks_like_bad_credential(engine):
    result = engine.check_login("ghost@example.com", PASSWORD)
    assert result.outcome == LoginOutcome.INVALID_CREDENTIAL
    [attempt] = engine.lockout.ledger.all_attempts("ghost@example.com")
    assert attempt.stage == "unknown_identity"


def test_five_failures_lock_even_correct_credentials(engine, clock):
    fail_login(engine, clock, 3)
    # Past the captcha threshold the remaining failures need solved challenges to reach the credential check.
    for _ in range(2):
        engine.check_login(EMAIL, "wrong password", captcha_proof=solve(engine.issue_captcha()))
        clock.advance(seconds=30)
    assert engine.login_status(EMAIL).state == LockoutState.LOCKED

    result = engine.check_login(EMAIL, PASSWORD, captcha_proof=solve(engine.issue_captcha()))
    assert result.outcome == LoginOutcome.LOCKED
    assert result.access_token is None
    with pytest.raises(AccountLocked):
        result.raise_for_outcome()


def test_lock_lifts_once_window_slides_past_failures(engine, clock):
    fail_login(engine, clock, 5)
    # Rejected-while-locked attempts still count, so the window has to slide past all of them.
    assert engine.check_login(EMAIL, PASSWORD).outcome == LoginOutcome.LOCKED

    clock.advance(minutes=15)
    assert engine.login_status(EMAIL).state == LockoutState.CLEAN
    assert engine.check_login(EMAIL, PASSWORD).outcome == LoginOutcome.ALLOWED


def test_three_failures_require_captcha_before_credential_check(engine, clock):
    fail_login(engine, clock, 3)
    store = engine.login.identity_store
    engine.login.identity_store = MagicMock(wraps=store)

    result = engine.check_login(EMAIL, PASSWORD)
    assert result.outcome == LoginOutcome.CAPTCHA_REQUIRED
    assert result.challenge is not None
    engine.login.identity_store.find_credentials.assert_not_called()
    with pytest.raises(CaptchaRequired):
        result.raise_for_outcome()


def test_solved_captcha_lets_credential_check_run(engine, clock, worker):
    fail_login(engine, clock, 3)
    result = engine.check_login(EMAIL, PASSWORD, captcha_proof=solve(engine.issue_captcha()))
    assert result.outcome == LoginOutcome.ALLOWED
    assert result.identity == worker


def test_wrong_captcha_answer_is_rejected(engine, clock):
    fail_login(engine, clock, 3)
    challenge = engine.issue_captcha()
    proof = solve(challenge)
    proof["answer"] += 1
    assert engine.check_login(EMAIL, PASSWORD, captcha_proof=proof).outcome == LoginOutcome.CAPTCHA_REQUIRED


def test_every_attempt_is_appended_with_its_stage(engine, clock):
    fail_login(engine, clock, 3)
    engine.check_login(EMAIL, PASSWORD)
    stages = [a.stage for a in engine.lockout.ledger.all_attempts(EMAIL)]
    assert stages == ["credential", "credential", "credential", "captcha"]


def test_inactive_identity_logs_in_but_is_denied_everything(engine, inactive_manager):
    result = engine.check_login(inactive_manager.email, PASSWORD)
    assert result.allowed is True
    assert engine.decide(result.identity, "view_dashboard").allowed is False


def test_identity_store_failure_is_recorded_and_raised(clock):
    from landguard.lockout import LockoutController
    from landguard.models import InMemoryAttemptLedger

    store = MagicMock()
    store.find_credentials.side_effect = StoreUnavailable("down")
    ledger = InMemoryAttemptLedger()
    service = LoginService(store, LockoutController(ledger, clock=clock))
    with pytest.raises(StoreUnavailable):
        service.check_login(EMAIL, PASSWORD)
    [attempt] = ledger.all_attempts(EMAIL)
    assert attempt.success is False
    assert attempt.stage == "error"


def test_missing_fields_are_validation_errors(engine):
    with pytest.raises(ValidationError):
        engine.check_login("  ", PASSWORD)
    with pytest.raises(ValidationError):
        engine.check_login(EMAIL, "")


def test_result_serializes_without_secrets(engine):
    data = engine.check_login(EMAIL, PASSWORD).to_dict()
    assert data["outcome"] == "Allowed"
    assert data["userID"] == "U-WORKER"
    assert PASSWORD not in str(data)
    assert read_token(data["accessToken"])["email"] == EMAIL


def test_verify_password_handles_bad_hashes():
    assert verify_password(PASSWORD, None) is False
    assert verify_password(PASSWORD, "not-a-bcrypt-hash") is False


class FailingAppendLedger(InMemoryAttemptLedger):
    """Reads work, writes do not."""

    def append(self, attempt):
        raise StoreUnavailable("put_item on login_attempts failed")


@pytest.mark.parametrize("password", ["wrong password", PASSWORD])
def test_no_verdict_when_attempt_cannot_be_recorded(engine, clock, password):
    service = LoginService(engine.identity_store, LockoutController(FailingAppendLedger(), clock=clock),
                           token_secret=SECRET)
    for _ in range(20):
        with pytest.raises(StoreUnavailable):
            service.check_login(EMAIL, password)
        clock.advance(seconds=5)


def test_parallel_logins_never_pass_the_lock_threshold(engine):
    with ThreadPoolExecutor(max_workers=10) as pool:
        results = list(pool.map(lambda _: engine.check_login(EMAIL, "wrong password"), range(10)))

    outcomes = Counter(result.outcome for result in results)
    assert outcomes == {
        LoginOutcome.INVALID_CREDENTIAL: 3,
        LoginOutcome.CAPTCHA_REQUIRED: 2,
        LoginOutcome.LOCKED: 5,
    }
    stages = Counter(a.stage for a in engine.lockout.ledger.all_attempts(EMAIL))
    assert stages["credential"] == 3


def test_login_on_another_instance_waits_for_the_lease(engine, clock):
    # A second controller over the same ledger stands in for another Lambda container.
    other = LoginService(engine.identity_store,
                         LockoutController(engine.lockout.ledger, clock=clock, lease_retries=1),
                         token_secret=SECRET)

    with engine.lockout.exclusive(EMAIL):
        with pytest.raises(LoginInProgress):
            other.check_login(EMAIL, PASSWORD)
    assert engine.lockout.ledger.all_attempts(EMAIL) == []

    assert other.check_login(EMAIL, PASSWORD).allowed is True


def test_retrying_while_locked_moves_unlock_time(engine, clock):
    fail_login(engine, clock, 5)
    first_unlock = engine.login_status(EMAIL).unlock_at

    assert engine.check_login(EMAIL, PASSWORD).outcome == LoginOutcome.LOCKED
    assert engine.login_status(EMAIL).unlock_at > first_unlock
