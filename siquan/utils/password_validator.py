"""
siquan/utils/password_validator.py — Password strength heuristics
Feedback strings are Traditional Chinese; they are shown to end users as-is.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional

COMMON_WEAK_PASSWORDS = frozenset([
    "password", "123456", "12345678", "qwerty", "abc123", "monkey", "1234567",
    "letmein", "trustno1", "dragon", "baseball", "iloveyou", "master", "sunshine",
    "ashley", "bailey", "passw0rd", "shadow", "123123", "654321", "superman",
    "qazwsx", "michael", "football", "welcome", "jesus", "ninja", "mustang",
    "password1", "123456789", "12345", "1234", "password123", "admin", "root",
    "user", "test", "guest", "demo", "administrator", "1234567890", "qwertyuiop",
    "mypass", "pass", "pass123", "temp", "temporary", "changeme", "login",
    "default", "sample", "example", "000000", "111111", "222222", "888888",
    "666666", "121212", "abc12345", "qwerty123", "asdfgh", "zxcvbn", "azerty",
    "password!", "p@ssword", "passw0rd!", "123qwe", "qwe123", "asd123", "1q2w3e",
    "1qaz2wsx", "zaq12wsx", "access", "secret", "secure", "security", "pass1234",
    "welcome1", "welcome123", "admin123", "root123", "user123", "test123",
    "abcd1234", "1234abcd", "qwer1234", "asdf1234", "password12", "passw0rd1",
    "letmein1", "starwars", "pokemon", "iloveyou1", "princess", "solo", "cheese",
    "computer", "maverick", "whatever", "jordan", "sophie", "freedom", "love",
    "family", "andrew", "liverpool", "thomas", "mercedes", "robert", "martin",
    "joshua", "cookie", "chelsea", "william", "george", "daniel", "jessica",
])

_SPECIAL_RE = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]")

_FEEDBACK = {
    "min_length": "密碼長度至少需要 8 個字元",
    "has_uppercase": "需要至少一個大寫字母 (A-Z)",
    "has_lowercase": "需要至少一個小寫字母 (a-z)",
    "has_number": "需要至少一個數字 (0-9)",
    "has_special_char": "需要至少一個特殊字元 (!@#$%^&* 等)",
    "not_common": "這個密碼太常見了，請選擇更安全的密碼",
    "not_similar_to_email": "密碼不能與您的電子郵件或用戶名相似",
}


@dataclass(frozen=True)
class StrengthLevel:
    label: str
    color: str
    description: str


STRENGTH_LEVELS = {
    0: StrengthLevel("非常弱", "bg-red-500", "這個密碼很容易被破解"),
    1: StrengthLevel("弱", "bg-orange-500", "密碼強度不足，建議改進"),
    2: StrengthLevel("中等", "bg-yellow-500", "密碼強度尚可，可以再加強"),
    3: StrengthLevel("強", "bg-green-500", "這是一個安全的密碼"),
}

STRENGTH_PERCENTAGES = {0: 25, 1: 50, 2: 75, 3: 100}


@dataclass
class PasswordValidationResult:
    is_valid: bool
    score: int
    feedback: list[str] = field(default_factory=list)
    requirements: dict[str, bool] = field(default_factory=dict)


def is_common_password(password: str) -> bool:
    """Exact match, or either string containing the other."""
    lowered = password.lower()
    return any(
        lowered == weak or weak in lowered or lowered in weak
        for weak in COMMON_WEAK_PASSWORDS
    )


def is_similar_to_identity(
    password: str,
    email: Optional[str] = None,
    username: Optional[str] = None,
) -> bool:
    lowered = password.lower()
    if email:
        local_part = email.lower().split("@")[0]
        if lowered in local_part or local_part in lowered:
            return True
    if username:
        name = username.lower()
        if lowered in name or name in lowered:
            return True
    return False


def _score(requirements: dict[str, bool], password: str) -> int:
    met = sum(requirements.values())
    total = len(requirements)
    pct = met / total * 100
    if len(password) >= 12 and met == total:
        return 3
    if pct >= 85:
        return 2
    if pct >= 50:
        return 1
    return 0


def validate_password(
    password: str,
    email: Optional[str] = None,
    username: Optional[str] = None,
) -> PasswordValidationResult:
    requirements = {
        "min_length": len(password) >= 8,
        "has_uppercase": bool(re.search(r"[A-Z]", password)),
        "has_lowercase": bool(re.search(r"[a-z]", password)),
        "has_number": bool(re.search(r"[0-9]", password)),
        "has_special_char": bool(_SPECIAL_RE.search(password)),
        "not_common": not is_common_password(password),
        "not_similar_to_email": not is_similar_to_identity(password, email, username),
    }
    feedback = [_FEEDBACK[key] for key, ok in requirements.items() if not ok]
    return PasswordValidationResult(
        is_valid=all(requirements.values()),
        score=_score(requirements, password),
        feedback=feedback,
        requirements=requirements,
    )


def get_password_strength(score: int) -> StrengthLevel:
    return STRENGTH_LEVELS[score]


def strength_percentage(score: int) -> int:
    return STRENGTH_PERCENTAGES[score]
