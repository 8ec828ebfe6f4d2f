"""
Password Generator — Random passwords from a character-class policy.

Characters are drawn with ``secrets.choice``, which rejection-samples
its index and is therefore unbiased for any alphabet size.

Lookalike glyphs removed when ``exclude_lookalikes`` is set:
    0 O 1 l I |
"""
import string
import secrets
import logging
from typing import Optional

from pydantic import BaseModel, Field

from .exceptions import InvalidPolicy

logger = logging.getLogger("navigator.vault")

UPPERCASE = string.ascii_uppercase
LOWERCASE = string.ascii_lowercase
DIGITS = string.digits
SYMBOLS = "!@#$%^&*()_+-=[]{}|;:,.<>?"
LOOKALIKES = frozenset("0O1lI|")

MIN_LENGTH = 4
MAX_LENGTH = 128
MAX_STRENGTH = 5

_LABELS = {0: "Weak", 1: "Weak", 2: "Weak", 3: "Fair", 4: "Good", 5: "Strong"}


class PasswordPolicy(BaseModel):
    """Which character classes a generated password may contain."""

    length: int = Field(default=16, ge=MIN_LENGTH, le=MAX_LENGTH)
    uppercase: bool = True
    lowercase: bool = True
    digits: bool = True
    symbols: bool = True
    exclude_lookalikes: bool = True

    def alphabet(self) -> str:
        """Return the active alphabet for this policy.

        Raises:
            InvalidPolicy: If no character is left to draw from.
        """
        chars = ""
        if self.uppercase:
            chars += UPPERCASE
        if self.lowercase:
            chars += LOWERCASE
        if self.digits:
            chars += DIGITS
        if self.symbols:
            chars += SYMBOLS
        if self.exclude_lookalikes:
            chars = "".join(c for c in chars if c not in LOOKALIKES)
        if not chars:
            raise InvalidPolicy("Select at least one character type")
        return chars


def generate(policy: Optional[PasswordPolicy] = None) -> str:
    """Generate a random password.

    Args:
        policy: Character-class policy; the default policy when omitted.

    Returns:
        Password of exactly ``policy.length`` characters.

    Raises:
        InvalidPolicy: If every character class is disabled.
    """
    if policy is None:
        policy = PasswordPolicy()
    alphabet = policy.alphabet()
    logger.debug(
        "Generating password: length=%d alphabet_size=%d",
        policy.length, len(alphabet),
    )
    return "".join(secrets.choice(alphabet) for _ in range(policy.length))


def _character_classes(password: str) -> int:
    classes = set()
    for char in password:
        if char.isupper():
            classes.add("upper")
        elif char.islower():
            classes.add("lower")
        elif char.isdigit():
            classes.add("digit")
        else:
            classes.add("symbol")
    return len(classes)


def strength(password: str) -> int:
    """Score a password from 0 to 5.

    One point each for reaching 8, 12 and 16 characters, plus one point per
    distinct character class beyond the first, capped at 5. Never looks up
    dictionaries, so the score is non-decreasing in both length and class
    diversity.
    """
    if not password:
        return 0
    length = len(password)
    score = sum(1 for threshold in (8, 12, 16) if length >= threshold)
    score += _character_classes(password) - 1
    return min(score, MAX_STRENGTH)


def strength_label(score: int) -> str:
    """Human label for a strength score."""
    return _LABELS[max(0, min(score, MAX_STRENGTH))]
