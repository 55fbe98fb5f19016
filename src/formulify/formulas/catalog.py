"""Named expressions and the catalog that holds them."""

from __future__ import annotations

from typing import Mapping, Union

from pydantic import BaseModel, ConfigDict, field_validator

from formulify.formulas.errors import InvalidNameError
from formulify.formulas.lexer import is_valid_name


class NamedExpression(BaseModel):
    """A formula name paired with its textual definition.

    A formula equal to its own name (``a = "a"``) marks a leaf: a pure
    variable whose value is supplied by the caller.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    formula: str

    def __init__(self, name: str, formula: str) -> None:
        super().__init__(name=name, formula=formula)

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        if not is_valid_name(value):
            raise InvalidNameError(value)
        return value

    @property
    def is_leaf(self) -> bool:
        return self.formula.strip() == self.name


Catalog = Mapping[str, NamedExpression]
CatalogLike = Mapping[str, Union[NamedExpression, str]]


def as_catalog(entries: CatalogLike | None) -> dict[str, NamedExpression]:
    """Normalise a mapping of name -> formula text or NamedExpression.

    Raises:
        InvalidNameError: If a key is not a valid identifier, or does not
            match the name of the NamedExpression stored under it.
    """
    catalog: dict[str, NamedExpression] = {}
    for key, entry in (entries or {}).items():
        if isinstance(entry, NamedExpression):
            if entry.name != key:
                raise InvalidNameError(key)
            catalog[key] = entry
        else:
            catalog[key] = NamedExpression(key, str(entry))
    return catalog
