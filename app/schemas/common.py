from typing import Annotated, Optional

from pydantic import BeforeValidator


def _blank_to_none(value):
    # Forms submit "" for untouched optional inputs
    if isinstance(value, str) and not value.strip():
        return None
    return value


OptionalText = Annotated[Optional[str], BeforeValidator(_blank_to_none)]
OptionalId = Annotated[Optional[int], BeforeValidator(_blank_to_none)]
