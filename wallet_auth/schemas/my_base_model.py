import logging
from typing import Any

from pydantic import BaseModel

logger = logging.getLogger(__name__)

_FALLBACKS = {dict: dict, str: str, bool: bool, int: int, float: float}


class CustomBaseModel(BaseModel):
    """Custom base model for all response schemas.
    - pre-process the data before init
    - set the default value if a simple-typed value can not be converted
    - build a response straight from an ORM row
    """

    def __init__(self, **data: Any) -> None:
        for attr, value in data.items():
            field = self.__class__.model_fields.get(attr)
            if field is None or value is None:
                continue
            attr_type = field.annotation

            # process simple type
            if attr_type in _FALLBACKS:
                try:  #  try to convert the value to the type of the attribute
                    data[attr] = attr_type(value)
                except Exception:
                    logger.debug("invalid value for key %s, using default", attr)
                    if field.is_required():
                        data[attr] = _FALLBACKS[attr_type]()
                    else:
                        data[attr] = field.get_default(call_default_factory=True)
        super().__init__(**data)

    @classmethod
    def from_orm_row(cls, row: Any):
        """Pick the declared fields off an ORM object"""
        return cls(**{
            name: getattr(row, name)
            for name in cls.model_fields
            if hasattr(row, name)
        })
