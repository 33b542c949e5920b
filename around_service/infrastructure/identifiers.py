"""
Post identifier generation
"""
import uuid

from ..domain.repositories import IIdentifierGenerator


class UUIDGenerator(IIdentifierGenerator):
    """Random 128-bit identifiers in canonical textual form"""

    def new(self) -> str:
        return str(uuid.uuid4())
