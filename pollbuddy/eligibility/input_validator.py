# pollbuddy/eligibility/input_validator.py

import re
import html
import bleach

from pollbuddy.eligibility.matric_validator import MatricValidator

# Validation of registration answers and candidate eligibility, plus
# sanitization of free text that gets rebroadcast to other users.

POSITIONS = [
    "President",
    "Vice President",
    "General Secretary",
    "Assistant General Secretary",
    "Financial Secretary",
    "Treasurer",
    "Public Relations Officer (PRO)",
    "Director of Socials",
    "Director of Sports",
    "Director of Programs",
    "Welfare Director",
    "Technical/IT Director",
    "Auditor",
    "Legal Adviser",
]

RESERVED_POSITIONS = ["President", "Vice President"]
RESERVED_MIN_LEVEL = 300

MIN_LEVEL, MAX_LEVEL = 100, 400
MIN_CANDIDATE_LEVEL = 200
MAX_MANIFESTO_LENGTH = 500
MAX_NAME_LENGTH = 120

DEFAULT_EMAIL_DOMAIN = "@stu.cu.edu.ng"


def _as_int(raw):
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and re.fullmatch(r'\d+', raw.strip()):
        return int(raw.strip())
    return None


class InputValidator:
    def __init__(self, email_domain=DEFAULT_EMAIL_DOMAIN, matric_validator=None):
        self.email_domain = email_domain.lower()
        self.matric_validator = matric_validator or MatricValidator()
        self.allowed_html_tags = []
        self.allowed_html_attributes = {}

        self.patterns = {
            # firstname.lastname
            'email_name': re.compile(r'^[a-z]+\.[a-z]+$'),
            # surname.123456, mirrors the matric serial
            'email_serial': re.compile(r'^[a-z][a-z]+\.\d{6}$'),
            'name': re.compile(r"^[^\W\d_]+(?:[ '\-.][^\W\d_]+)*$"),
            'xss_script': re.compile(r'<script[^>]*>.*?</script>', re.IGNORECASE | re.DOTALL),
            'xss_event': re.compile(r'\bon\w+\s*=', re.IGNORECASE),
        }

    def sanitize_string(self, input_str, max_length=255):
        if not isinstance(input_str, str):
            raise ValueError("Input must be a string")
        if len(input_str) > max_length:
            input_str = input_str[:max_length]

        sanitized = re.sub(self.patterns['xss_script'], '', input_str)
        sanitized = re.sub(self.patterns['xss_event'], '', sanitized)
        sanitized = bleach.clean(sanitized, tags=self.allowed_html_tags,
                                 attributes=self.allowed_html_attributes, strip=True)
        # bleach escapes entities; chat clients show text, not HTML
        return html.unescape(sanitized).strip()

    def validate_name(self, name) -> bool:
        if not isinstance(name, str):
            return False
        name = ' '.join(name.split())
        return 0 < len(name) <= MAX_NAME_LENGTH and bool(self.patterns['name'].match(name))

    def validate_email(self, email) -> bool:
        if not isinstance(email, str):
            return False
        email_lower = email.strip().lower()
        if not email_lower.endswith(self.email_domain):
            return False
        local_part = email_lower[:-len(self.email_domain)]
        return bool(self.patterns['email_name'].match(local_part)
                    or self.patterns['email_serial'].match(local_part))

    def validate_level(self, level) -> bool:
        value = _as_int(level)
        return value is not None and MIN_LEVEL <= value <= MAX_LEVEL

    def validate_candidate_level(self, level) -> bool:
        value = _as_int(level)
        return value is not None and MIN_CANDIDATE_LEVEL <= value <= MAX_LEVEL

    def position_allowed_for_level(self, position, level) -> bool:
        if position not in RESERVED_POSITIONS:
            return True
        value = _as_int(level)
        return value is not None and value >= RESERVED_MIN_LEVEL

    def is_valid_position(self, position) -> bool:
        return position in POSITIONS

    def validate_manifesto(self, manifesto) -> bool:
        return isinstance(manifesto, str) and len(manifesto) <= MAX_MANIFESTO_LENGTH

    def eligible_positions(self, level):
        return [p for p in POSITIONS if self.position_allowed_for_level(p, level)]

    def can_apply_for_position(self, matric, position, level):
        """Chain membership, candidate level and office/level rules.

        Stops at the first failing rule and reports why.
        """
        matric_result = self.matric_validator.validate_matric_number(matric)
        if not matric_result['is_valid'] or not matric_result['is_member']:
            return {'can_apply': False, 'reason': matric_result['message'], 'department': None}

        if not self.validate_candidate_level(level):
            return {
                'can_apply': False,
                'reason': "❌ Only students in levels 200-400 can apply as candidates.",
                'department': None,
            }

        if not self.position_allowed_for_level(position, level):
            return {
                'can_apply': False,
                'reason': f"❌ Level {level} students cannot apply for {position} position.",
                'department': None,
            }

        return {
            'can_apply': True,
            'reason': f"✅ Eligible to apply for {position}.",
            'department': matric_result['details']['department_name'],
        }
