from datetime import timedelta

import pytest

from pollbuddy import db
from pollbuddy.authentication.otp import OTPFlow
from pollbuddy.database.models import Candidate, utcnow
from pollbuddy.errors import (
    CodeExpired, CodeMismatch, DeliveryFailed, NotFound, NotVerified, UniquenessConflict, ValidationFailed,
)


@pytest.fixture
def applicant(make_user):
    return make_user(61, name="Ngozi Eze", matric="21cg061061", level=300, email="ngozi.eze@stu.cu.edu.ng")


def test_check_can_apply_lists_positions(services, applicant):
    user, positions = services.candidates.check_can_apply(applicant.telegram_id)
    assert user.telegram_id == applicant.telegram_id
    assert "President" in positions


def test_apply_creates_pending_candidacy(services, applicant):
    candidate = services.candidates.apply(applicant.telegram_id, "Treasurer")
    assert candidate.is_approved is False
    assert candidate.name == "Ngozi Eze"
    assert services.mailer.outbox[-1][0] == "ngozi.eze@stu.cu.edu.ng"
    assert services.otp.has_pending(applicant.telegram_id, OTPFlow.CANDIDATE)


def test_apply_requires_verification(services, make_user):
    user = make_user(62, verified=False)
    with pytest.raises(NotVerified):
        services.candidates.apply(user.telegram_id, "Treasurer")


def test_apply_requires_candidate_level(services, make_user):
    user = make_user(63, level=100)
    with pytest.raises(ValidationFailed):
        services.candidates.check_can_apply(user.telegram_id)


def test_apply_requires_member_matric(services, make_user):
    user = make_user(64, matric="21ab064064")
    with pytest.raises(ValidationFailed):
        services.candidates.check_can_apply(user.telegram_id)


def test_reserved_position_needs_senior_level(services, make_user):
    user = make_user(65, level=200)
    with pytest.raises(ValidationFailed) as exc:
        services.candidates.apply(user.telegram_id, "President")
    assert "cannot apply for President" in exc.value.message
    assert db.session.query(Candidate).count() == 0


def test_unknown_position(services, applicant):
    with pytest.raises(ValidationFailed):
        services.candidates.apply(applicant.telegram_id, "Chief Vibes Officer")


def test_one_application_per_user(services, applicant):
    services.candidates.apply(applicant.telegram_id, "Treasurer")
    with pytest.raises(UniquenessConflict):
        services.candidates.apply(applicant.telegram_id, "Auditor")


def test_mail_failure_leaves_no_application(services, applicant):
    services.mailer.ok = False
    with pytest.raises(DeliveryFailed):
        services.candidates.apply(applicant.telegram_id, "Treasurer")
    assert db.session.query(Candidate).count() == 0
    assert not services.otp.has_pending(applicant.telegram_id, OTPFlow.CANDIDATE)


def test_confirm_application(services, applicant):
    services.candidates.apply(applicant.telegram_id, "Treasurer")
    candidate = services.candidates.confirm_application(applicant.telegram_id, services.mailer.last_code)
    assert candidate.position == "Treasurer"
    assert candidate.is_approved is False
    assert not services.otp.has_pending(applicant.telegram_id, OTPFlow.CANDIDATE)


def test_confirm_with_wrong_code(services, applicant, monkeypatch):
    monkeypatch.setattr(services.otp, 'generate_code', lambda: "123456")
    services.candidates.apply(applicant.telegram_id, "Treasurer")
    with pytest.raises(CodeMismatch):
        services.candidates.confirm_application(applicant.telegram_id, "000000")
    assert services.candidates.get_candidate(applicant.telegram_id) is not None


def test_expired_confirmation_withdraws_application(services, applicant, monkeypatch):
    services.candidates.apply(applicant.telegram_id, "Treasurer")
    later = utcnow() + timedelta(minutes=10)
    monkeypatch.setattr(services.otp, '_now', lambda: later)
    with pytest.raises(CodeExpired) as exc:
        services.candidates.confirm_application(applicant.telegram_id, services.mailer.last_code)
    assert "apply again" in exc.value.message
    assert services.candidates.get_candidate(applicant.telegram_id) is None
    # a fresh application is possible
    monkeypatch.undo()
    services.candidates.apply(applicant.telegram_id, "Auditor")


def test_approve(services, applicant):
    services.candidates.apply(applicant.telegram_id, "Treasurer")
    candidate = services.candidates.approve(applicant.telegram_id, actor='1000')
    assert candidate.is_approved is True
    assert services.candidates.list_pending() == []
    assert [c.candidate_id for c in services.candidates.list_approved()] == [candidate.candidate_id]


def test_approve_twice(services, make_candidate):
    candidate = make_candidate(66, approved=False)
    services.candidates.approve(candidate.telegram_id)
    with pytest.raises(NotFound):
        services.candidates.approve(candidate.telegram_id)


def test_reject_missing_application(services):
    with pytest.raises(NotFound) as exc:
        services.candidates.reject("404")
    assert exc.value.code == "NOT_FOUND"


def test_reject_pending_application(services, make_candidate):
    candidate = make_candidate(67, position="Auditor", approved=False, name="Emeka Obi")
    removed = services.candidates.reject(candidate.telegram_id, actor='1000')
    assert removed == {
        'candidate_id': candidate.candidate_id,
        'telegram_id': '67',
        'name': "Emeka Obi",
        'position': "Auditor",
    }
    assert db.session.query(Candidate).count() == 0


def test_reject_leaves_approved_candidacy(services, make_candidate):
    candidate = make_candidate(68, approved=True)
    with pytest.raises(NotFound):
        services.candidates.reject(candidate.telegram_id)
    assert services.candidates.get_candidate(candidate.telegram_id) is not None


def test_set_photo(services, make_candidate):
    candidate = make_candidate(69)
    assert services.candidates.set_photo(candidate.telegram_id, "AgADphoto").picture == "AgADphoto"
    with pytest.raises(ValidationFailed):
        services.candidates.set_photo(candidate.telegram_id, "")


def test_set_manifesto_sanitizes(services, make_candidate):
    candidate = make_candidate(70)
    updated = services.candidates.set_manifesto(candidate.telegram_id, "<b>Better</b> welfare <script>x()</script>")
    assert updated.manifesto == "Better welfare"


def test_manifesto_limits(services, make_candidate):
    candidate = make_candidate(71)
    with pytest.raises(ValidationFailed):
        services.candidates.set_manifesto(candidate.telegram_id, "x" * 501)
    with pytest.raises(ValidationFailed):
        services.candidates.set_manifesto(candidate.telegram_id, "<script>only()</script>")


def test_profile_edits_need_a_candidacy(services, applicant):
    with pytest.raises(NotFound):
        services.candidates.set_manifesto(applicant.telegram_id, "Hello")
