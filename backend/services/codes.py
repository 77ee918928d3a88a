import secrets

CODE_MIN = 100000
CODE_MAX = 999999


def generate_code() -> str:
    """Random 6-digit code, uniform over [CODE_MIN, CODE_MAX]. Not checked for uniqueness."""
    return str(CODE_MIN + secrets.randbelow(CODE_MAX - CODE_MIN + 1))
