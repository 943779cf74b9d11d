import dataclasses
from typing import Iterable, Iterator, Optional, Tuple
from urllib import parse

from mediax.mediaformat import supported_format_names

FORMAT = 'format'
QUALITY = 'quality'
WIDTH = 'width'
HEIGHT = 'height'
BITRATE = 'bitrate'

# Canonical serialization order. Never the order of the incoming query.
OPTION_KEYS = (FORMAT, QUALITY, WIDTH, HEIGHT, BITRATE)
IMAGE_OPTION_KEYS = (FORMAT, QUALITY, WIDTH, HEIGHT)
AUDIO_OPTION_KEYS = (FORMAT, BITRATE)

ORIGINAL = 'original'
AUTO = 'auto'

MAX_DIMENSION = 4000
MAX_QUALITY = 100

# Characters that would break the path encoding of a directive string.
RESERVED_CHARS = frozenset(',=/')


def parse_positive_int(value: str, max_value: int) -> Optional[int]:
  try:
    n = int(value)
  except ValueError:
    return None

  if n <= 0:
    return None

  return min(n, max_value)


def find_accepted_format(accept: str, names: Iterable[str]) -> Optional[str]:
  accept = accept.lower()
  for name in names:
    if name in accept:
      return name
  return None


@dataclasses.dataclass(eq=True, frozen=True)
class Directives:
  format: Optional[str] = None
  quality: Optional[int] = None
  width: Optional[int] = None
  height: Optional[int] = None
  bitrate: Optional[str] = None

  def items(self) -> Iterator[Tuple[str, str]]:
    for key in OPTION_KEYS:
      value = getattr(self, key)
      if value is not None:
        yield key, str(value)

  def has_any(self, keys: Iterable[str]) -> bool:
    return any(getattr(self, key) is not None for key in keys)

  def is_empty(self) -> bool:
    return not self.has_any(OPTION_KEYS)

  def serialize(self) -> str:
    if self.is_empty():
      return ORIGINAL
    return ','.join(f'{k}={v}' for k, v in self.items())

  def to_query(self) -> str:
    return parse.urlencode(list(self.items()))

  @classmethod
  def parse(cls, s: str) -> Optional['Directives']:
    """Parse the last path segment received by the compute tier.

    Returns None when the segment is not a directive string at all, so the
    caller can fall back to serving the original. Values are validated again
    because the compute endpoint must not trust that the edge ran.
    """
    if s == ORIGINAL:
      return cls()

    pairs = []
    for kv in s.split(','):
      key, sep, value = kv.partition('=')
      if sep == '':
        return None
      pairs.append((key, value))

    return resolve_options(pairs, accept='', audio=True)


def resolve_options(
    pairs: Iterable[Tuple[str, str]],
    accept: str,
    audio: bool,
) -> Directives:
  names = supported_format_names(audio)
  keys = OPTION_KEYS if audio else IMAGE_OPTION_KEYS
  options: dict[str, int | str] = {}

  for key, value in pairs:
    key = key.lower()
    value = value.lower()
    if key == '' or value == '' or key not in keys:
      continue

    match key:
      case 'format':
        if value == AUTO:
          accepted = find_accepted_format(accept, names)
          if accepted is not None:
            options[FORMAT] = accepted
        elif value in names:
          options[FORMAT] = value
      case 'width' | 'height':
        size = parse_positive_int(value, MAX_DIMENSION)
        if size is not None:
          options[key] = size
      case 'quality':
        quality = parse_positive_int(value, MAX_QUALITY)
        if quality is not None:
          options[QUALITY] = quality
      case 'bitrate':
        if RESERVED_CHARS.isdisjoint(value):
          options[BITRATE] = value

  return Directives(**options)  # type: ignore[arg-type]
