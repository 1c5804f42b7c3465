# /pharmacy/utils/phone_util.py
import re

_NON_DIGITS = re.compile(r'\D')

def _digits(value: str) -> str:
    return _NON_DIGITS.sub('', value or '')

def format_au_phone(value: str) -> str:
    """
    Formats a phone number the Australian way.

    Mobiles (04...) become ``04XX XXX XXX`` and landlines ``(0X) XXXX XXXX``.
    Partial numbers are formatted as far as they go, anything past ten
    digits is dropped, and a number missing its leading 0 gets one.
    """
    digits = _digits(value)
    if not digits:
        return ''

    if not digits.startswith('0'):
        digits = '0' + digits
    digits = digits[:10]

    if digits.startswith('04'):
        if len(digits) <= 4:
            return digits
        if len(digits) <= 7:
            return f"{digits[:4]} {digits[4:]}"
        return f"{digits[:4]} {digits[4:7]} {digits[7:]}"

    if len(digits) <= 2:
        return f"({digits}"
    if len(digits) <= 6:
        return f"({digits[:2]}) {digits[2:]}"
    return f"({digits[:2]}) {digits[2:6]} {digits[6:]}"

def is_valid_au_phone(value: str) -> bool:
    """Ten digits starting with 0, mobile or landline."""
    digits = _digits(value)
    return len(digits) == 10 and digits.startswith('0')

def normalize_au_phone(value):
    """Formats a complete number for storage, rejecting anything that is not one."""
    if value is None or not str(value).strip():
        return None
    if not is_valid_au_phone(format_au_phone(str(value))):
        raise ValueError(f"Invalid Australian phone number: {value}")
    return format_au_phone(str(value))
