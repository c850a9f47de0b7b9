"""
Input validation for Codora.

Rejects malformed requests and settings before they reach a billed backend.
"""

from decimal import Decimal, InvalidOperation
from typing import Optional

from codora.schemas import Tier


class ValidationError(ValueError):
    """Raised when input validation fails."""
    pass


MAX_CODE_LENGTH = 200_000  # ~50K tokens
MAX_CONTEXT_LENGTH = 20_000
MAX_LANGUAGE_LENGTH = 64


def validate_code(code: str) -> None:
    """
    Validate the code snippet to explain.

    Args:
        code: Source text

    Raises:
        ValidationError: If code is invalid
    """
    if not isinstance(code, str):
        raise ValidationError(f"code must be a string, got {type(code).__name__}")

    if not code.strip():
        raise ValidationError("code cannot be empty or whitespace-only")

    if len(code) > MAX_CODE_LENGTH:
        raise ValidationError(
            f"code too long: {len(code):,} characters "
            f"(max: {MAX_CODE_LENGTH:,})"
        )


def validate_context(context: str) -> None:
    if not isinstance(context, str):
        raise ValidationError(f"context must be a string, got {type(context).__name__}")

    if len(context) > MAX_CONTEXT_LENGTH:
        raise ValidationError(
            f"context too long: {len(context):,} characters "
            f"(max: {MAX_CONTEXT_LENGTH:,})"
        )


def validate_language(language: str) -> None:
    if not isinstance(language, str) or not language.strip():
        raise ValidationError("language must be a non-empty string")

    if len(language) > MAX_LANGUAGE_LENGTH:
        raise ValidationError(f"language tag too long: {language[:20]}...")


def validate_threshold(threshold: float) -> None:
    """Complexity thresholds live in [0, 1]."""
    if not isinstance(threshold, (int, float)) or isinstance(threshold, bool):
        raise ValidationError(
            f"threshold must be a number, got {type(threshold).__name__}"
        )

    if threshold < 0.0 or threshold > 1.0:
        raise ValidationError(f"threshold must be between 0.0 and 1.0, got {threshold}")


def parse_tier(tier) -> Optional[Tier]:
    """Accept a Tier, its string value, or None."""
    if tier is None or isinstance(tier, Tier):
        return tier
    try:
        return Tier(str(tier).lower())
    except ValueError:
        raise ValidationError(
            f"tier must be one of {[t.value for t in Tier]}, got {tier!r}"
        ) from None


def parse_amount(value, name: str = "amount") -> Decimal:
    """
    Parse a non-negative currency amount.

    Floats go through str() so 0.1 becomes Decimal("0.1"), not its binary expansion.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number, got bool")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{name} must be a number, got {value!r}") from None

    if not amount.is_finite():
        raise ValidationError(f"{name} must be finite, got {value!r}")

    if amount < 0:
        raise ValidationError(f"{name} cannot be negative, got {value}")

    return amount


def validate_explain_request(code: str, context: str, language: str) -> None:
    """
    Validate all explain parameters.

    Raises:
        ValidationError: If any parameter is invalid
    """
    validate_code(code)
    validate_context(context)
    validate_language(language)
