# pollbuddy/conversation/states.py
"""Conversation steps a user can be in.

Each step is a small dataclass carrying only the answers collected so far.
The store persists them as JSON documents tagged with ``step``; the tags
match the legacy rows (``name``, ``matric``, ``level``, ``email``,
``candidate_otp_verification``, ``upload_photo``, ``edit_manifesto``,
``voting``) so existing state survives an upgrade.
"""

import json
from dataclasses import asdict, dataclass, field, fields
from typing import List, Optional


@dataclass
class NameStep:
    step = "name"


@dataclass
class MatricStep:
    name: str
    step = "matric"


@dataclass
class LevelStep:
    name: str
    matric: str
    step = "level"


@dataclass
class EmailStep:
    name: str
    matric: str
    level: int
    step = "email"


@dataclass
class CandidateOTPStep:
    position: str
    step = "candidate_otp_verification"


@dataclass
class UploadPhotoStep:
    step = "upload_photo"


@dataclass
class EditManifestoStep:
    step = "edit_manifesto"


@dataclass
class VotingStep:
    # candidate ids offered on the ballot, nothing else
    candidates: List[int] = field(default_factory=list)
    step = "voting"


REGISTRATION_STEPS = (NameStep, MatricStep, LevelStep, EmailStep)

STEPS = {
    cls.step: cls
    for cls in (NameStep, MatricStep, LevelStep, EmailStep, CandidateOTPStep,
                UploadPhotoStep, EditManifestoStep, VotingStep)
}


def dump_state(state) -> str:
    document = asdict(state)
    document['step'] = state.step
    return json.dumps(document, sort_keys=True)


def load_state(raw) -> Optional[object]:
    """Rebuild a step from its JSON document; unknown documents give None."""
    try:
        document = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(document, dict):
        return None
    cls = STEPS.get(document.get('step'))
    if cls is None:
        return None

    kwargs = {f.name: document[f.name] for f in fields(cls) if f.name in document}
    if cls is VotingStep:
        # legacy rows stored whole candidate records
        kwargs['candidates'] = [
            c['candidate_id'] if isinstance(c, dict) else c for c in kwargs.get('candidates', [])
        ]
    try:
        return cls(**kwargs)
    except TypeError:
        return None
