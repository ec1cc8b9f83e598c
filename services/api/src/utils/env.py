"""Typed environment variables.

An ``EnvVarSpec`` names a variable, its default and how to parse it;
``validate`` checks a list of specs at startup and logs every problem
rather than stopping at the first.
"""

import logging
import os
from typing import Any, Callable, List, Optional, Tuple

from pydantic import BaseModel, ValidationError, create_model

logger = logging.getLogger(__name__)


class EnvVarSpec(BaseModel):
    id: str
    default: Optional[str] = None
    parse: Callable[[str], Any] = lambda x: x
    type: Tuple[Any, Any] = (str, ...)
    is_optional: bool = False
    is_secret: bool = False


def raw(spec: EnvVarSpec) -> Optional[str]:
    value = os.environ.get(spec.id)
    if value is None or value == "":
        return spec.default
    return value


def parse(spec: EnvVarSpec) -> Any:
    value = raw(spec)
    if value is None:
        if spec.is_optional:
            return None
        raise ValueError(f"Missing required environment variable {spec.id}")
    return spec.parse(value)


def validate(specs: List[EnvVarSpec]) -> bool:
    ok = True
    for spec in specs:
        value = raw(spec)
        if value is None:
            if not spec.is_optional:
                logger.error(f"Missing required environment variable {spec.id}")
                ok = False
            continue

        shown = "****" if spec.is_secret else value
        try:
            parsed = spec.parse(value)
            model = create_model(f"Env_{spec.id}", value=spec.type)
            model(value=parsed)
        except (ValueError, TypeError, ValidationError) as e:
            logger.error(f"Invalid value for {spec.id} ({shown}): {e}")
            ok = False
    return ok
