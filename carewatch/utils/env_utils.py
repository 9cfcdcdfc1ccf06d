import os


def env_str(name: str, default: str = "") -> str:
    return str(os.getenv(name, default) or default).strip()


def env_truthy(name: str, default: str = "0") -> bool:
    return env_str(name, default).lower() in ("1", "true", "yes", "y", "on")


def int_env(name: str, default: int, minimum: int, maximum: int) -> int:
    try:
        value = int(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        value = default
    return max(minimum, min(maximum, value))


def float_env(name: str, default: float, minimum: float, maximum: float) -> float:
    try:
        value = float(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        value = default
    return max(minimum, min(maximum, value))
