# roomchat/services/validation_service.py
"""Validation and sanitization of untrusted socket payloads.

Every function here is pure: problems are reported as a list of readable
strings on ``ValidationResult`` and nothing is raised.
"""
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, List


@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)


@dataclass
class MessageValidationOptions:
    min_length: int = 1
    max_length: int = 2000
    allow_empty_lines: bool = False
    allow_only_whitespace: bool = False
    blocked_words: List[str] = field(default_factory=list)
    max_consecutive_chars: int = 10


_SCRIPT_BLOCK = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_TAG = re.compile(r"<[^>]*>")
_WHITESPACE = re.compile(r"\s+")
_UUID = re.compile(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE)
_CAPITAL = re.compile(r"[A-Z]")
_PUNCTUATION = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]")


def _result(errors: List[str]) -> ValidationResult:
    return ValidationResult(is_valid=not errors, errors=errors)


def is_valid_uuid(value: Any) -> bool:
    if not isinstance(value, str) or not value:
        return False
    return _UUID.fullmatch(value) is not None


def validate_message(content: Any, options: MessageValidationOptions = None) -> ValidationResult:
    opts = options or MessageValidationOptions()
    errors: List[str] = []

    if content is None:
        return _result(["Message content is required"])

    message = content if isinstance(content, str) else str(content)
    trimmed = message.strip()

    if not opts.allow_only_whitespace and not trimmed:
        errors.append("Message cannot be empty or contain only whitespace")

    if len(trimmed) < opts.min_length:
        errors.append(f"Message must be at least {opts.min_length} character(s) long")

    if len(message) > opts.max_length:
        errors.append(f"Message cannot exceed {opts.max_length} characters")

    if not opts.allow_empty_lines and "\n\n" in message:
        errors.append("Message cannot contain empty lines")

    if has_excessive_consecutive_chars(message, opts.max_consecutive_chars):
        errors.append(
            f"Message cannot have more than {opts.max_consecutive_chars} consecutive identical characters"
        )

    if opts.blocked_words:
        found = find_blocked_words(message, opts.blocked_words)
        if found:
            errors.append(f"Message contains blocked words: {', '.join(found)}")

    if is_likely_spam(message):
        errors.append("Message appears to be spam")

    return _result(errors)


def validate_room_id(room_id: Any) -> ValidationResult:
    if not is_valid_uuid(room_id):
        return _result(["Room ID must be a valid UUID"])
    return _result([])


def validate_message_id(message_id: Any) -> ValidationResult:
    if not is_valid_uuid(message_id):
        return _result(["Message ID must be a valid UUID"])
    return _result([])


def sanitize_message(content: Any) -> str:
    """Strip markup and normalise whitespace.

    Markup is removed before whitespace is collapsed so that a second pass
    over the output is always a no-op.
    """
    if not content:
        return ""

    text = str(content).replace("\0", "")
    text = _SCRIPT_BLOCK.sub("", text)
    text = _TAG.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


def has_excessive_consecutive_chars(message: str, max_consecutive: int) -> bool:
    count = 1
    previous = ""
    for char in message:
        if char == previous:
            count += 1
            if count > max_consecutive:
                return True
        else:
            count = 1
            previous = char
    return False


def find_blocked_words(message: str, blocked_words: List[str]) -> List[str]:
    lowered = message.lower()
    return [word for word in blocked_words if word.lower() in lowered]


def is_likely_spam(message: str) -> bool:
    if not message:
        return False

    words = _WHITESPACE.split(message.lower())
    if len(words) < 50 and any(count > 5 for count in Counter(words).values()):
        return True

    length = len(message)
    if length > 10 and len(_CAPITAL.findall(message)) / length > 0.7:
        return True

    return length > 10 and len(_PUNCTUATION.findall(message)) / length > 0.3


def validate_join_room_data(data: Any) -> ValidationResult:
    if not isinstance(data, dict):
        return _result(["Join room data must be an object"])
    return validate_room_id(data.get("roomId"))


def validate_leave_room_data(data: Any) -> ValidationResult:
    if not isinstance(data, dict):
        return _result(["Leave room data must be an object"])
    return validate_room_id(data.get("roomId"))


def validate_typing_data(data: Any) -> ValidationResult:
    if not isinstance(data, dict):
        return _result(["Typing data must be an object"])

    errors = [f"Room ID: {e}" for e in validate_room_id(data.get("roomId")).errors]
    if not isinstance(data.get("isTyping"), bool):
        errors.append("isTyping must be a boolean value")
    return _result(errors)


def validate_message_read_data(data: Any) -> ValidationResult:
    if not isinstance(data, dict):
        return _result(["Read receipt data must be an object"])

    errors = list(validate_message_id(data.get("messageId")).errors)
    errors.extend(validate_room_id(data.get("roomId")).errors)
    return _result(errors)


def validate_mark_messages_read_data(data: Any, max_ids: int = 100) -> ValidationResult:
    if not isinstance(data, dict):
        return _result(["Read receipt data must be an object"])

    errors = list(validate_room_id(data.get("roomId")).errors)
    message_ids = data.get("messageIds")
    if not isinstance(message_ids, list):
        errors.append("messageIds must be an array")
    elif len(message_ids) > max_ids:
        errors.append(f"messageIds cannot contain more than {max_ids} entries")
    elif not all(is_valid_uuid(message_id) for message_id in message_ids):
        errors.append("Every message ID must be a valid UUID")
    return _result(errors)
