"""
Test cases for the password policy.
"""
from quizcore.auth.password_policy import PasswordPolicy, PasswordRule


def test_strong_password_passes_default_policy():
    check = PasswordPolicy().validate_password("Str0ng!Pwd")
    assert check.ok
    assert check.violations == []


def test_weak_password_reports_every_violation():
    check = PasswordPolicy().validate_password("weak")
    assert not check.ok
    assert check.violations == [
        PasswordRule.MIN_LENGTH,
        PasswordRule.REQUIRE_DIGIT,
        PasswordRule.REQUIRE_UPPERCASE,
        PasswordRule.REQUIRE_NON_ALPHANUMERIC,
    ]


def test_empty_password_fails_all_rules():
    check = PasswordPolicy().validate_password("")
    assert set(check.violations) == {
        PasswordRule.MIN_LENGTH,
        PasswordRule.REQUIRE_DIGIT,
        PasswordRule.REQUIRE_LOWERCASE,
        PasswordRule.REQUIRE_UPPERCASE,
        PasswordRule.REQUIRE_NON_ALPHANUMERIC,
    }


def test_character_class_rules_can_be_disabled():
    policy = PasswordPolicy(
        min_length=4,
        require_digit=False,
        require_uppercase=False,
        require_non_alphanumeric=False,
    )
    assert policy.validate_password("weak").ok
    assert policy.validate_password("WEAK").violations == [PasswordRule.REQUIRE_LOWERCASE]


def test_camel_case_options_are_accepted():
    policy = PasswordPolicy(**{
        "minLength": 12,
        "requireDigit": False,
        "requireLowercase": True,
        "requireUppercase": True,
        "requireNonAlphanumeric": False,
    })
    assert policy.min_length == 12
    assert policy.validate_password("ShortPass").violations == [PasswordRule.MIN_LENGTH]


def test_password_longer_than_bcrypt_limit_is_rejected():
    password = "Aa1!" + "x" * 80
    assert PasswordRule.MAX_LENGTH in PasswordPolicy().validate_password(password).violations


def test_describe_gives_a_message_per_rule():
    policy = PasswordPolicy()
    for rule in PasswordRule:
        assert policy.describe(rule)
    assert "8" in policy.describe(PasswordRule.MIN_LENGTH)
