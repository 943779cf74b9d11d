import dataclasses
from typing import Mapping


@dataclasses.dataclass(frozen=True)
class OriginObject:
  body: bytes
  content_type: str
  metadata: Mapping[str, str]


@dataclasses.dataclass(frozen=True)
class Transformed:
  body: bytes
  content_type: str
