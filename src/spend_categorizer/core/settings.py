import os

from dotenv import find_dotenv, load_dotenv

from spend_categorizer.logger import get_logger

logger = get_logger(__name__)


CONFIG_FILENAME = "config.yaml"

_CONFIG_FILE_PATH: str | None = None
_CONFIG_FILE_VALUES: dict[str, str] = {}
_EXTERNAL_ENV_KEYS: set[str] = set()

_CONFIG_KEYS = (
    "LOG_LEVEL",
    "LOG_DIR",
    "FUZZY_THRESHOLD",
    "TFIDF_THRESHOLD",
    "ML_THRESHOLD",
    "TRAINING_EPOCHS",
    "TRAINING_BATCH_SIZE",
    "VALIDATION_SPLIT",
    "ENABLED_PHASES",
    "PHASE2_METHODS",
    "VALIDATE_TAXONOMY",
)

DEFAULT_FUZZY_THRESHOLD = 0.8
DEFAULT_TFIDF_THRESHOLD = 0.3
DEFAULT_ML_THRESHOLD = 30.0
DEFAULT_TRAINING_EPOCHS = 10
DEFAULT_TRAINING_BATCH_SIZE = 32
DEFAULT_VALIDATION_SPLIT = 0.2
DEFAULT_ENABLED_PHASES = frozenset({1, 2, 3})
DEFAULT_PHASE2_METHODS = frozenset({"keyword", "fuzzy", "tfidf"})
ALL_PHASE2_METHODS = ("keyword", "fuzzy", "tfidf", "pattern")


def _resolve_dotenv_path() -> str | None:
    config_dir = os.getenv("CONFIG_DIR")
    if config_dir:
        candidate = os.path.join(config_dir, ".env")
        if os.path.exists(candidate):
            return candidate
    resolved = find_dotenv(usecwd=True)
    return resolved or None


def _resolve_config_path() -> str:
    config_dir = os.getenv("CONFIG_DIR")
    if config_dir:
        return os.path.join(config_dir, CONFIG_FILENAME)
    cwd = os.getcwd()
    candidate = os.path.join(cwd, "config", CONFIG_FILENAME)
    if os.path.exists(candidate):
        return candidate
    return os.path.join(cwd, CONFIG_FILENAME)


def _strip_inline_comment(raw_value: str) -> str:
    in_single = False
    in_double = False
    escaped = False
    for index, char in enumerate(raw_value):
        if escaped:
            escaped = False
            continue
        if char == "\\":
            escaped = True
            continue
        if char == '"' and not in_single:
            in_double = not in_double
            continue
        if char == "'" and not in_double:
            in_single = not in_single
            continue
        if char == "#" and not in_single and not in_double:
            return raw_value[:index].rstrip()
    return raw_value


def _unquote_value(raw_value: str) -> str:
    if len(raw_value) < 2:
        return raw_value
    if raw_value[0] == raw_value[-1] == '"':
        value = raw_value[1:-1]
        return value.replace('\\"', '"').replace("\\\\", "\\")
    if raw_value[0] == raw_value[-1] == "'":
        value = raw_value[1:-1]
        return value.replace("\\'", "'").replace("\\\\", "\\")
    return raw_value


def read_config_file(path: str | None) -> dict[str, str]:
    if not path or not os.path.exists(path):
        return {}

    values: dict[str, str] = {}
    with open(path, encoding="utf-8") as handle:
        for line in handle:
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            if ":" not in stripped:
                continue
            key, raw_value = stripped.split(":", 1)
            key = key.strip()
            if not key:
                continue
            cleaned = _strip_inline_comment(raw_value).strip()
            if not cleaned:
                continue
            value = _unquote_value(cleaned)
            if value:
                values[key] = value
    return values


def load_environment() -> None:
    global _CONFIG_FILE_PATH
    global _CONFIG_FILE_VALUES
    global _EXTERNAL_ENV_KEYS

    dotenv_path = _resolve_dotenv_path()
    if dotenv_path:
        load_dotenv(dotenv_path=dotenv_path, override=False)

    _EXTERNAL_ENV_KEYS = set(os.environ.keys())

    _CONFIG_FILE_PATH = _resolve_config_path()
    _CONFIG_FILE_VALUES = read_config_file(_CONFIG_FILE_PATH)

    for key in _CONFIG_KEYS:
        if key not in os.environ and key in _CONFIG_FILE_VALUES:
            os.environ[key] = _CONFIG_FILE_VALUES[key]


def get_config_path() -> str | None:
    return _CONFIG_FILE_PATH


def is_env_override(name: str) -> bool:
    return name in _EXTERNAL_ENV_KEYS


def get_env_int(name: str, default: int, min_value: int | None = None) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("[ENV] Invalid %s='%s', using default %s.", name, raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning(
            "[ENV] %s='%s' below minimum %s, using default %s.",
            name,
            raw,
            min_value,
            default,
        )
        return default
    return value


def get_env_float(
    name: str,
    default: float = 0.0,
    min_value: float | None = None,
    max_value: float | None = None,
) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("[ENV] Invalid %s='%s', using default %s.", name, raw, default)
        return default
    if (min_value is not None and value < min_value) or (max_value is not None and value > max_value):
        logger.warning(
            "[ENV] %s='%s' outside [%s, %s], using default %s.",
            name,
            raw,
            min_value,
            max_value,
            default,
        )
        return default
    return value


def get_env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if not raw:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def parse_list(raw: str | None) -> list[str]:
    if not raw:
        return []
    parts = [part.strip().lower() for part in raw.split(",")]
    items: list[str] = []
    for part in parts:
        if part and part not in items:
            items.append(part)
    return items


def get_env_phases(name: str = "ENABLED_PHASES") -> frozenset[int]:
    raw = os.getenv(name)
    if not raw:
        return DEFAULT_ENABLED_PHASES
    phases: set[int] = set()
    for item in parse_list(raw):
        if item in {"1", "2", "3"}:
            phases.add(int(item))
        else:
            logger.warning("[ENV] Ignoring unknown phase '%s' in %s.", item, name)
    return frozenset(phases)


def get_env_phase2_methods(name: str = "PHASE2_METHODS") -> frozenset[str]:
    raw = os.getenv(name)
    if not raw:
        return DEFAULT_PHASE2_METHODS
    methods: set[str] = set()
    for item in parse_list(raw):
        if item in ALL_PHASE2_METHODS:
            methods.add(item)
        else:
            logger.warning("[ENV] Ignoring unknown phase 2 method '%s' in %s.", item, name)
    return frozenset(methods)


def fuzzy_threshold() -> float:
    return get_env_float("FUZZY_THRESHOLD", DEFAULT_FUZZY_THRESHOLD, min_value=0.0, max_value=1.0)


def tfidf_threshold() -> float:
    return get_env_float("TFIDF_THRESHOLD", DEFAULT_TFIDF_THRESHOLD, min_value=0.0, max_value=1.0)


def ml_threshold() -> float:
    return get_env_float("ML_THRESHOLD", DEFAULT_ML_THRESHOLD, min_value=0.0, max_value=100.0)


_ENV_KEYS_TO_LOG = _CONFIG_KEYS


def log_environment() -> None:
    logger.info("[ENV] Logging configured environment variables (config file: %s).", get_config_path() or "<none>")
    for key in _ENV_KEYS_TO_LOG:
        raw_value = os.getenv(key)
        value = "<unset>" if raw_value is None else raw_value.replace("\n", "\\n")
        source = "env" if is_env_override(key) else "config"
        logger.info("[ENV] %s=%s (%s)", key, value, source if raw_value is not None else "default")


load_environment()

TRAINING_EPOCHS = get_env_int("TRAINING_EPOCHS", DEFAULT_TRAINING_EPOCHS, min_value=1)
TRAINING_BATCH_SIZE = get_env_int("TRAINING_BATCH_SIZE", DEFAULT_TRAINING_BATCH_SIZE, min_value=1)
VALIDATION_SPLIT = get_env_float(
    "VALIDATION_SPLIT",
    DEFAULT_VALIDATION_SPLIT,
    min_value=0.0,
    max_value=0.95,
)
