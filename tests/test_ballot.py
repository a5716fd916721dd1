from datetime import timedelta

import pytest

from pollbuddy import db
from pollbuddy.conversation.states import VotingStep
from pollbuddy.database.models import UserState, Vote, utcnow
from pollbuddy.errors import (
    AlreadyVoted, EncryptFailed, InvalidSelection, NotFound, NotVerified, WindowClosed, WindowNotOpen,
)


@pytest.fixture
def open_window(services):
    now = utcnow()
    return services.window.set_window(now - timedelta(hours=1), now + timedelta(hours=1))


@pytest.fixture
def election(services, make_user, make_candidate, open_window):
    voter = make_user(21, name="Voter One")
    candidate = make_candidate(31, name="Chidi Okafor")
    return voter, candidate


def vote_count():
    return db.session.query(Vote).count()


def test_cast_vote_stores_encrypted_ballot(services, election):
    voter, candidate = election
    services.ballots.cast_vote(voter.telegram_id, candidate.candidate_id)

    vote = db.session.query(Vote).one()
    assert vote.voter_telegram_id == voter.telegram_id
    assert vote.candidate_id == candidate.candidate_id
    ballot = services.encryption.decrypt_vote(vote.encrypted_vote)
    assert ballot['voter_id'] == voter.telegram_id
    assert ballot['candidate_id'] == candidate.candidate_id
    assert ballot['election_id'] == 'test_election'


def test_second_vote_is_refused(services, election):
    voter, candidate = election
    services.ballots.cast_vote(voter.telegram_id, candidate.candidate_id)
    with pytest.raises(AlreadyVoted):
        services.ballots.cast_vote(voter.telegram_id, candidate.candidate_id)
    assert vote_count() == 1


def test_concurrent_duplicate_hits_the_unique_constraint(services, election, monkeypatch):
    voter, candidate = election
    services.ballots.cast_vote(voter.telegram_id, candidate.candidate_id)
    # second request passed its has_voted check before the first committed
    monkeypatch.setattr(services.ballots, 'has_voted', lambda telegram_id: False)
    with pytest.raises(AlreadyVoted):
        services.ballots.cast_vote(voter.telegram_id, candidate.candidate_id)
    assert vote_count() == 1
    events = [e['event_type'] for e in services.audit_log.entries()]
    assert events[-1] == 'duplicate_vote_attempt'


def test_duplicate_submissions_for_different_candidates(services, election, make_candidate, monkeypatch):
    voter, first = election
    others = [make_candidate(40 + i, name=f"Rival {i}", position="Auditor") for i in range(4)]
    # every request passed its has_voted check before any of them committed
    monkeypatch.setattr(services.ballots, 'has_voted', lambda telegram_id: False)

    accepted, refused = [], 0
    for candidate in [first] + others:
        try:
            accepted.append(services.ballots.cast_vote(voter.telegram_id, candidate.candidate_id))
        except AlreadyVoted:
            refused += 1

    assert [c.candidate_id for c in accepted] == [first.candidate_id]
    assert refused == len(others)
    assert vote_count() == 1


def test_unverified_voter(services, make_user, make_candidate, open_window):
    voter = make_user(22, verified=False)
    candidate = make_candidate(32)
    with pytest.raises(NotVerified):
        services.ballots.cast_vote(voter.telegram_id, candidate.candidate_id)


def test_unknown_voter(services, make_candidate, open_window):
    candidate = make_candidate(32)
    with pytest.raises(NotVerified):
        services.ballots.cast_vote("999", candidate.candidate_id)


def test_vote_before_window_opens(services, make_user, make_candidate):
    now = utcnow()
    services.window.set_window(now + timedelta(hours=1), now + timedelta(hours=9))
    voter = make_user(23)
    candidate = make_candidate(33)
    with pytest.raises(WindowNotOpen):
        services.ballots.cast_vote(voter.telegram_id, candidate.candidate_id)
    assert vote_count() == 0


def test_vote_after_window_closes(services, election, monkeypatch):
    voter, candidate = election
    period = services.window.get_window()
    monkeypatch.setattr(services.window, '_now', lambda: period.end_date + timedelta(seconds=1))
    with pytest.raises(WindowClosed):
        services.ballots.cast_vote(voter.telegram_id, candidate.candidate_id)


def test_unapproved_or_missing_candidate(services, election, make_candidate):
    voter, _ = election
    pending = make_candidate(34, approved=False)
    with pytest.raises(InvalidSelection):
        services.ballots.cast_vote(voter.telegram_id, pending.candidate_id)
    with pytest.raises(InvalidSelection):
        services.ballots.cast_vote(voter.telegram_id, 9999)
    assert vote_count() == 0


def test_encryption_failure_writes_nothing(services, election, monkeypatch):
    voter, candidate = election

    def broken(payload):
        raise EncryptFailed()

    monkeypatch.setattr(services.encryption, 'encrypt_vote', broken)
    with pytest.raises(EncryptFailed):
        services.ballots.cast_vote(voter.telegram_id, candidate.candidate_id)
    assert vote_count() == 0
    assert not services.ballots.has_voted(voter.telegram_id)


def test_cast_vote_clears_the_ballot_state(services, election):
    voter, candidate = election
    services.store.save(voter.telegram_id, VotingStep(candidates=[candidate.candidate_id]))
    services.ballots.cast_vote(voter.telegram_id, candidate.candidate_id)
    assert db.session.get(UserState, voter.telegram_id) is None


def test_ballot_excludes_own_candidacy(services, make_user, make_candidate, open_window):
    voter_candidate = make_candidate(35, name="Self Runner")
    other = make_candidate(36, name="Other Runner")
    make_candidate(37, approved=False)
    ids = [c.candidate_id for c in services.ballots.open_ballot(voter_candidate.telegram_id)]
    assert ids == [other.candidate_id]


def test_open_ballot_after_voting(services, election):
    voter, candidate = election
    services.ballots.cast_vote(voter.telegram_id, candidate.candidate_id)
    with pytest.raises(AlreadyVoted):
        services.ballots.open_ballot(voter.telegram_id)


def test_tally_orders_by_votes(services, make_user, make_candidate, open_window):
    leader = make_candidate(41, name="Leader", position="Treasurer")
    trailer = make_candidate(42, name="Trailer", position="Treasurer")
    make_candidate(43, name="Nobody", position="Auditor")
    make_candidate(44, name="Pending", position="Treasurer", approved=False)
    for voter_id, choice in ((51, leader), (52, leader), (53, trailer)):
        make_user(voter_id)
        services.ballots.cast_vote(voter_id, choice.candidate_id)

    tally = services.ballots.tally()
    assert list(tally) == ["Auditor", "Treasurer"]
    assert [(r['name'], r['votes']) for r in tally["Treasurer"]] == [("Leader", 2), ("Trailer", 1)]
    assert tally["Auditor"][0]['votes'] == 0
    assert services.ballots.candidate_vote_count(leader.candidate_id) == 2


def test_turnout(services, election, make_user):
    voter, candidate = election
    make_user(24, verified=False)
    services.ballots.cast_vote(voter.telegram_id, candidate.candidate_id)
    # the voter and the candidate's user are verified
    assert services.ballots.turnout() == {'verified_voters': 2, 'votes_cast': 1, 'turnout_pct': 50.0}


def test_audit_vote(services, election):
    voter, candidate = election
    services.ballots.cast_vote(voter.telegram_id, candidate.candidate_id)
    vote = db.session.query(Vote).one()
    report = services.ballots.audit_vote(vote.vote_id, actor='1000')
    assert report['consistent'] is True
    assert report['ballot']['candidate_id'] == candidate.candidate_id


def test_audit_vote_detects_foreign_ciphertext(services, election):
    voter, candidate = election
    services.ballots.cast_vote(voter.telegram_id, candidate.candidate_id)
    vote = db.session.query(Vote).one()
    vote.encrypted_vote = "bm90IGEgYmFsbG90"
    db.session.commit()
    report = services.ballots.audit_vote(vote.vote_id)
    assert report['ballot'] is None
    assert report['consistent'] is False


def test_audit_missing_vote(services):
    with pytest.raises(NotFound):
        services.ballots.audit_vote(12345)
