"""
Password complexity policy.
"""
from enum import Enum
from typing import List
from pydantic import BaseModel, ConfigDict, Field

# bcrypt ignores everything past this many bytes
BCRYPT_MAX_PASSWORD_BYTES = 72


class PasswordRule(str, Enum):
    MIN_LENGTH = "min_length"
    MAX_LENGTH = "max_length"
    REQUIRE_DIGIT = "require_digit"
    REQUIRE_LOWERCASE = "require_lowercase"
    REQUIRE_UPPERCASE = "require_uppercase"
    REQUIRE_NON_ALPHANUMERIC = "require_non_alphanumeric"


class PasswordCheck(BaseModel):
    """Outcome of checking one password against a policy."""
    violations: List[PasswordRule] = []

    @property
    def ok(self) -> bool:
        return not self.violations


class PasswordPolicy(BaseModel):
    """
    Configurable complexity policy.

    Every enabled rule is evaluated and every failure reported, so callers
    can show the complete list at once.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    min_length: int = Field(8, alias="minLength", ge=1, le=BCRYPT_MAX_PASSWORD_BYTES)
    require_digit: bool = Field(True, alias="requireDigit")
    require_lowercase: bool = Field(True, alias="requireLowercase")
    require_uppercase: bool = Field(True, alias="requireUppercase")
    require_non_alphanumeric: bool = Field(True, alias="requireNonAlphanumeric")

    def validate_password(self, password: str) -> PasswordCheck:
        violations = []
        if len(password) < self.min_length:
            violations.append(PasswordRule.MIN_LENGTH)
        if len(password.encode("utf-8")) > BCRYPT_MAX_PASSWORD_BYTES:
            violations.append(PasswordRule.MAX_LENGTH)
        if self.require_digit and not any(ch.isdigit() for ch in password):
            violations.append(PasswordRule.REQUIRE_DIGIT)
        if self.require_lowercase and not any(ch.islower() for ch in password):
            violations.append(PasswordRule.REQUIRE_LOWERCASE)
        if self.require_uppercase and not any(ch.isupper() for ch in password):
            violations.append(PasswordRule.REQUIRE_UPPERCASE)
        if self.require_non_alphanumeric and all(ch.isalnum() for ch in password):
            violations.append(PasswordRule.REQUIRE_NON_ALPHANUMERIC)
        return PasswordCheck(violations=violations)

    def describe(self, rule: PasswordRule) -> str:
        """Human-readable message for a violated rule."""
        return {
            PasswordRule.MIN_LENGTH: f"Password must be at least {self.min_length} characters",
            PasswordRule.MAX_LENGTH: f"Password must be at most {BCRYPT_MAX_PASSWORD_BYTES} bytes",
            PasswordRule.REQUIRE_DIGIT: "Password must contain a digit",
            PasswordRule.REQUIRE_LOWERCASE: "Password must contain a lowercase letter",
            PasswordRule.REQUIRE_UPPERCASE: "Password must contain an uppercase letter",
            PasswordRule.REQUIRE_NON_ALPHANUMERIC: "Password must contain a non-alphanumeric character",
        }[rule]
