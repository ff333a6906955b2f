"""
keyrel key codec — deterministic key names.

Layout (must match existing data byte for byte):

    <Model>:last_id                         id counter
    <Model>#<id>                            entity
    <Model>#<id>:<attr>                     attribute
    <Model>#<id>:<inverse><_ids|_id>        backlink, inverse declared
    <Model>#<id>:<ForeignModel>:<attr>      backlink, no inverse

Example: ``Post#42:authors_ids`` holds the ids of every User whose
``posts_ids`` contains 42, when ``Post.authors`` is the inverse of
``User.posts``; otherwise the same ids live at ``Post#42:User:posts_ids``.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .models.fields import InverseRef

InverseLookup = Callable[[str, str], Optional["InverseRef"]]


def _no_inverse(model: str, method: str) -> Optional["InverseRef"]:
    return None


class KeyCodec:
    """
    Pure key builder. Does no I/O.

    Args:
        inverse_of: ``(model, method) -> InverseRef | None`` lookup used
                    to name backlinks; normally ``Registry.inverse_of``.
    """

    def __init__(self, inverse_of: InverseLookup = _no_inverse):
        self._inverse_of = inverse_of

    @staticmethod
    def counter_key(model: str) -> str:
        return f"{model}:last_id"

    @staticmethod
    def entity_key(model: str, id: Any) -> str:
        return f"{model}#{id}"

    @classmethod
    def attr_key(cls, model: str, id: Any, attr: str) -> str:
        return f"{cls.entity_key(model, id)}:{attr}"

    def backlink_key(
        self,
        owning_model: str,
        owning_id: Any,
        foreign_model: str,
        foreign_method: str,
        foreign_attr: str,
    ) -> str:
        """
        Key of the backlink stored on ``owning_model#owning_id`` for the
        forward relation ``foreign_model.foreign_method`` (attribute
        ``foreign_attr``).
        """
        inverse = self._inverse_of(foreign_model, foreign_method)
        if inverse is not None:
            return self.attr_key(owning_model, owning_id, inverse.attr)
        return f"{self.entity_key(owning_model, owning_id)}:{foreign_model}:{foreign_attr}"
