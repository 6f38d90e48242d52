from __future__ import annotations
import os
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, TypeVar

from core.runtime.events import DEFAULT_FUNCTION_ARN

T = TypeVar("T")

ENV_PREFIX = "LRT_"

class ConfigError(ValueError):
    def __init__(self, var: str, raw: str, reason: str):
        super().__init__(f"{var}={raw!r}: {reason}")
        self.var = var

def _parse_bool(raw: str) -> bool:
    val = raw.strip().lower()
    if val in ("1", "true", "yes", "on"):
        return True
    if val in ("0", "false", "no", "off", ""):
        return False
    raise ValueError("expected a boolean")

def _parse_positive_float(raw: str) -> float:
    val = float(raw)
    if val <= 0:
        raise ValueError("must be > 0")
    return val

def _parse_port(raw: str) -> int:
    val = int(raw)
    if not 0 < val < 65536:
        raise ValueError("port out of range")
    return val

@dataclass(frozen=True)
class RuntimeConfig:
    # HTTP surface
    host: str = "127.0.0.1"
    port: int = 9001

    # synthetic function identity
    function_arn: str = DEFAULT_FUNCTION_ARN
    function_timeout_s: float = 900.0  # drives Lambda-Runtime-Deadline-Ms

    # long-poll of /invocation/next; None blocks until work arrives
    next_invocation_timeout_s: Optional[float] = None
    poll_interval_s: float = 0.1  # upper bound of one condition wait

    # logging
    debug: bool = False
    json_logs: bool = True

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RuntimeConfig":
        env = os.environ if environ is None else environ
        defaults = cls()

        def read(name: str, parse: Callable[[str], T], default: T) -> T:
            var = ENV_PREFIX + name
            raw = env.get(var)
            if raw is None:
                return default
            try:
                return parse(raw)
            except ValueError as e:
                raise ConfigError(var, raw, str(e)) from e

        return cls(
            host=read("HOST", str, defaults.host),
            port=read("PORT", _parse_port, defaults.port),
            function_arn=read("FUNCTION_ARN", str, defaults.function_arn),
            function_timeout_s=read("FUNCTION_TIMEOUT_S", _parse_positive_float, defaults.function_timeout_s),
            next_invocation_timeout_s=read("NEXT_TIMEOUT_S", _parse_positive_float, defaults.next_invocation_timeout_s),
            poll_interval_s=read("POLL_INTERVAL_S", _parse_positive_float, defaults.poll_interval_s),
            debug=read("DEBUG", _parse_bool, defaults.debug),
            json_logs=read("JSON_LOGS", _parse_bool, defaults.json_logs),
        )
