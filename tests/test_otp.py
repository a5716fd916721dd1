import re
from datetime import timedelta

import pytest

from pollbuddy.authentication.otp import OTPFlow
from pollbuddy.database.models import utcnow
from pollbuddy.errors import CodeExpired, CodeMismatch, DeliveryFailed, NoPendingCode


@pytest.fixture
def voter(make_user):
    return make_user(11, verified=False)


def test_generated_codes_are_six_digits(services):
    for _ in range(50):
        assert re.fullmatch(r'\d{6}', services.otp.generate_code())


def test_issue_mails_the_code(services, voter):
    code = services.otp.issue(voter.telegram_id, OTPFlow.VOTER, email=voter.email)
    assert services.mailer.outbox == [(voter.email, code)]
    assert services.otp.has_pending(voter.telegram_id, OTPFlow.VOTER)


def test_code_is_single_use(services, voter):
    code = services.otp.issue(voter.telegram_id, OTPFlow.VOTER)
    assert services.otp.verify(voter.telegram_id, OTPFlow.VOTER, code) is True
    with pytest.raises(NoPendingCode):
        services.otp.verify(voter.telegram_id, OTPFlow.VOTER, code)


def test_mismatch_keeps_the_code(services, voter, monkeypatch):
    monkeypatch.setattr(services.otp, 'generate_code', lambda: "123456")
    services.otp.issue(voter.telegram_id, OTPFlow.VOTER)
    with pytest.raises(CodeMismatch):
        services.otp.verify(voter.telegram_id, OTPFlow.VOTER, "654321")
    assert services.otp.verify(voter.telegram_id, OTPFlow.VOTER, " 123456 ") is True


def test_non_ascii_digits_are_a_mismatch(services, voter, monkeypatch):
    monkeypatch.setattr(services.otp, 'generate_code', lambda: "123456")
    services.otp.issue(voter.telegram_id, OTPFlow.VOTER)
    with pytest.raises(CodeMismatch):
        services.otp.verify(voter.telegram_id, OTPFlow.VOTER, "١٢٣٤٥٦")
    assert services.otp.has_pending(voter.telegram_id, OTPFlow.VOTER)


def test_expired_code_is_removed(services, voter, monkeypatch):
    code = services.otp.issue(voter.telegram_id, OTPFlow.VOTER)
    later = utcnow() + timedelta(minutes=6)
    monkeypatch.setattr(services.otp, '_now', lambda: later)
    with pytest.raises(CodeExpired):
        services.otp.verify(voter.telegram_id, OTPFlow.VOTER, code)
    assert not services.otp.has_pending(voter.telegram_id, OTPFlow.VOTER)


def test_code_valid_until_expiry(services, voter, monkeypatch):
    issued_at = utcnow()
    monkeypatch.setattr(services.otp, '_now', lambda: issued_at)
    code = services.otp.issue(voter.telegram_id, OTPFlow.VOTER)
    monkeypatch.setattr(services.otp, '_now', lambda: issued_at + timedelta(minutes=5))
    assert services.otp.verify(voter.telegram_id, OTPFlow.VOTER, code) is True


def test_reissue_replaces_the_live_code(services, voter, monkeypatch):
    codes = iter(["111111", "222222"])
    monkeypatch.setattr(services.otp, 'generate_code', lambda: next(codes))
    services.otp.issue(voter.telegram_id, OTPFlow.VOTER)
    services.otp.issue(voter.telegram_id, OTPFlow.VOTER)
    with pytest.raises(CodeMismatch):
        services.otp.verify(voter.telegram_id, OTPFlow.VOTER, "111111")
    assert services.otp.verify(voter.telegram_id, OTPFlow.VOTER, "222222") is True


def test_delivery_failure_withdraws_the_code(services, voter):
    services.mailer.ok = False
    with pytest.raises(DeliveryFailed):
        services.otp.issue(voter.telegram_id, OTPFlow.VOTER, email=voter.email)
    assert not services.otp.has_pending(voter.telegram_id, OTPFlow.VOTER)


def test_flows_are_independent(services, voter):
    code = services.otp.issue(voter.telegram_id, OTPFlow.VOTER)
    with pytest.raises(NoPendingCode):
        services.otp.verify(voter.telegram_id, OTPFlow.CANDIDATE, code)
    assert services.otp.has_pending(voter.telegram_id, OTPFlow.VOTER)


def test_pending_flow_prefers_voter_codes(services, voter):
    assert services.otp.pending_flow(voter.telegram_id) is None
    services.otp.issue(voter.telegram_id, OTPFlow.CANDIDATE)
    services.otp.issue(voter.telegram_id, OTPFlow.VOTER)
    assert services.otp.pending_flow(voter.telegram_id) is OTPFlow.VOTER
    services.otp.discard(voter.telegram_id, OTPFlow.VOTER)
    assert services.otp.pending_flow(voter.telegram_id) is OTPFlow.CANDIDATE


def test_admin_flow_is_never_matched_by_bare_codes(services, voter):
    services.otp.issue(voter.telegram_id, OTPFlow.ADMIN)
    assert services.otp.pending_flow(voter.telegram_id) is None


def test_verification_is_audited(services, voter):
    code = services.otp.issue(voter.telegram_id, "voter")
    services.otp.verify(voter.telegram_id, "voter", code)
    events = [e['event_type'] for e in services.audit_log.entries()]
    assert events == ['otp_verified']
