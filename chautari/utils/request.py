# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request utilities for extracting and validating request data.
"""

from flask import request, g
from typing import Type, TypeVar
from pydantic import BaseModel, ValidationError
import logging

from ..domain.errors import ForbiddenError, InvalidValueError
from ..models.entities import ActorContext

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_json_body(model_cls: Type[ModelT]) -> ModelT:
    """
    Validate the JSON request body against a pydantic model.

    A missing body is treated as an empty object so models with only
    optional fields accept bodiless POSTs.

    Raises:
        InvalidValueError: naming the first invalid field
    """
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise InvalidValueError("body", "The request body must be a JSON object")

    try:
        return model_cls.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or "body"
        logger.debug("Request body validation failed", extra={"field": field, "errors": e.error_count()})
        raise InvalidValueError(field, f"'{field}': {first.get('msg', 'invalid value')}")


def current_actor() -> ActorContext:
    """Actor authenticated by ``require_actor``."""
    actor = g.get("actor")
    if actor is None:
        raise ForbiddenError("Authentication is required for this operation")
    return actor
