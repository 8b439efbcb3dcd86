"""
UUID creation. uuid7 is not part of the python standard library before 3.14, so
we take it from `uuid_extensions`.
"""

from uuid import UUID as UUID

from uuid_extensions import uuid7 as uuid7

__ALL__ = ["UUID", "uuid7"]
