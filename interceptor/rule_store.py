"""
RuleStore - owns the ordered rule list.
Every load() re-reads the document so each request gets a fresh, immutable snapshot.
"""

from pathlib import Path
from typing import List
from urllib.parse import unquote

import structlog
from pydantic import ValidationError

from interceptor.errors import ConfigValidationError
from interceptor.models import Config, Rule, is_absolute_url
from interceptor.storage import read_json_safe, write_json_atomic

logger = structlog.get_logger(__name__)

CONFIG_FILE = "config.json"


def validate_config(config: Config) -> List[str]:
    """Return a list of problems; empty when the config can be saved"""
    errors = []
    for index, rule in enumerate(config.rules):
        label = rule.title or rule.id
        if not is_absolute_url(rule.source_url_prefix):
            errors.append(f"rules[{index}] ({label}): sourceUrlPrefix must be an absolute URL")
        if not rule.target.strip():
            errors.append(f"rules[{index}] ({label}): target is required")
        elif "\x00" in unquote(rule.target):
            errors.append(f"rules[{index}] ({label}): target contains a NUL byte")
    return errors


def parse_config(document) -> Config:
    """Build a Config from a raw JSON document, raising ConfigValidationError on bad shape"""
    try:
        return Config.model_validate(document)
    except ValidationError as exc:
        problems = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        ]
        raise ConfigValidationError(problems) from exc


class RuleStore:
    """File-backed store for the configuration document"""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Config:
        payload, error = read_json_safe(self.path)
        if error:
            logger.warning("config_unreadable", path=str(self.path), error=error)
            return Config()
        if payload is None:
            config = Config()
            write_json_atomic(self.path, config.to_document())
            return config
        return self._lenient_config(payload)

    def _lenient_config(self, payload) -> Config:
        """Keep every rule that validates; a bad rule only excludes itself"""
        raw_rules = payload.get("rules", []) if isinstance(payload, dict) else None
        if not isinstance(raw_rules, list):
            logger.warning("config_invalid", path=str(self.path), error="rules must be a list")
            return Config()

        rules = []
        for index, item in enumerate(raw_rules):
            try:
                rules.append(Rule.model_validate(item))
            except ValidationError as exc:
                logger.warning("rule_skipped", path=str(self.path), index=index,
                               errors=[err["msg"] for err in exc.errors()])
        return Config(rules=tuple(rules))

    def save(self, config: Config) -> None:
        errors = validate_config(config)
        if errors:
            raise ConfigValidationError(errors)
        write_json_atomic(self.path, config.to_document())
        logger.info("config_saved", path=str(self.path), rules=len(config.rules))


class MemoryRuleStore:
    """Same contract as RuleStore, kept in process memory"""

    def __init__(self, config: Config = None):
        self._config = config or Config()

    def load(self) -> Config:
        return self._config

    def save(self, config: Config) -> None:
        errors = validate_config(config)
        if errors:
            raise ConfigValidationError(errors)
        self._config = config
