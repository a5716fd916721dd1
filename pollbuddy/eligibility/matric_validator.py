# pollbuddy/eligibility/matric_validator.py

import re

# NACOS membership check: only Computer Science (CG) and Computer
# Engineering (CH) matric numbers may register.

NOT_A_MEMBER = "NOT_A_MEMBER"
BAD_FORMAT = "BAD_FORMAT"

DEPARTMENTS = {
    'cg': "Computer Science",
    'ch': "Computer Engineering",
}


class MatricValidator:
    def __init__(self):
        self.valid_departments = list(DEPARTMENTS)
        # 2-digit entry year + department code + 6-digit serial
        self.matric_pattern = re.compile(r'^(\d{2})(cg|ch)(\d{6})$')

    def validate_matric_number(self, matric):
        """Validate a matric number and report NACOS membership.

        Returns a dict with ``is_valid``, ``is_member``, ``error``,
        ``message`` and, when valid, ``details`` (year, department code,
        department name, serial and the normalized matric).
        """
        if not matric or not isinstance(matric, str):
            return {
                'is_valid': False,
                'is_member': False,
                'error': BAD_FORMAT,
                'message': "❌ Please provide a valid matric number.",
                'details': None,
            }

        clean_matric = re.sub(r'\s+', '', matric).lower()

        if not any(dept in clean_matric for dept in self.valid_departments):
            return {
                'is_valid': False,
                'is_member': False,
                'error': NOT_A_MEMBER,
                'message': (
                    "❌ Only students from Computer Science (CG) and Computer Engineering (CH) "
                    "departments can register.\n\n"
                    "You are not eligible for NACOS membership with this matric number."
                ),
                'details': None,
            }

        match = self.matric_pattern.match(clean_matric)
        if not match:
            # Department marker present, shape wrong
            return {
                'is_valid': False,
                'is_member': True,
                'error': BAD_FORMAT,
                'message': (
                    "❌ Invalid matric number format.\n\n"
                    "Expected format: YYcgNNNNNN or YYchNNNNNN\n"
                    "Example: 21cg029945 or 22ch031256"
                ),
                'details': None,
            }

        year, department, serial = match.groups()
        return {
            'is_valid': True,
            'is_member': True,
            'error': None,
            'message': "✅ Valid NACOS member matric number.",
            'details': {
                'year': f"20{year}",
                'department': department.upper(),
                'department_name': self.get_department_name(department),
                'student_number': serial,
                'clean_matric': clean_matric,
            },
        }

    def is_valid_member(self, matric) -> bool:
        result = self.validate_matric_number(matric)
        return result['is_valid'] and result['is_member']

    def normalize(self, matric) -> str:
        return re.sub(r'\s+', '', matric or '').lower()

    def get_department_name(self, dept_code):
        return DEPARTMENTS.get((dept_code or '').lower(), "Unknown Department")

    def department_of(self, matric):
        """Department name for reporting; tolerant of invalid numbers."""
        clean = self.normalize(matric)
        for code, name in DEPARTMENTS.items():
            if code in clean:
                return name
        return "Other/Invalid"
