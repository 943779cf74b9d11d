import dataclasses
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional

DEFAULT_BITRATE = '64k'


class MediaKind(Enum):
  IMAGE = 'image'
  AUDIO = 'audio'

  @classmethod
  def from_content_type(cls, content_type: Optional[str]) -> Optional['MediaKind']:
    if not content_type:
      return None
    ct = content_type.lower()
    for kind in cls:
      if ct.startswith(kind.value):
        return kind
    return None


@dataclasses.dataclass(eq=True, frozen=True)
class MediaFormat:
  name: str
  kind: MediaKind
  format: str
  content_type: str
  codec: Optional[str] = None
  supports_quality: bool = False
  supports_bitrate: bool = False
  suffix: Optional[str] = None

  @property
  def encodable(self) -> bool:
    return self.kind == MediaKind.AUDIO or self.suffix is not None


def image_format(
    name: str,
    format: str,
    content_type: str,
    suffix: Optional[str],
    supports_quality: bool,
) -> MediaFormat:
  return MediaFormat(
      name=name,
      kind=MediaKind.IMAGE,
      format=format,
      content_type=content_type,
      supports_quality=supports_quality,
      suffix=suffix)


def audio_format(
    name: str,
    codec: str,
    format: str,
    content_type: str,
    supports_bitrate: bool,
) -> MediaFormat:
  return MediaFormat(
      name=name,
      kind=MediaKind.AUDIO,
      format=format,
      content_type=content_type,
      codec=codec,
      supports_bitrate=supports_bitrate)


# Order matters: format=auto picks the first name found in the Accept header.
IMAGE_FORMATS: Mapping[str, MediaFormat] = MappingProxyType({
    f.name: f for f in [
        image_format('jpg', 'jpeg', 'image/jpeg', '.jpg', True),
        image_format('jpeg', 'jpeg', 'image/jpeg', '.jpg', True),
        image_format('png', 'png', 'image/png', '.png', False),
        image_format('webp', 'webp', 'image/webp', '.webp', True),
        image_format('gif', 'gif', 'image/gif', '.gif', False),
        image_format('tif', 'tiff', 'image/tiff', '.tif', True),
        image_format('tiff', 'tiff', 'image/tiff', '.tif', True),
        image_format('avif', 'avif', 'image/avif', '.avif', True),
        # libvips loads SVG but has no saver for it.
        image_format('svg', 'svg', 'image/svg+xml', None, False),
    ]
})

AUDIO_FORMATS: Mapping[str, MediaFormat] = MappingProxyType({
    f.name: f for f in [
        audio_format('mp3', 'libmp3lame', 'mp3', 'audio/mpeg', True),
        audio_format('aac', 'aac', 'aac', 'audio/aac', True),
        # ac3 rejects bitrates below 64k
        audio_format('ac3', 'ac3', 'ac3', 'audio/ac3', True),
        audio_format('flac', 'flac', 'flac', 'audio/flac', False),
        audio_format('m4a', 'alac', 'm4a', 'audio/mp4a-latm', False),
        audio_format('wav', 'pcm_s16le', 'wav', 'audio/wav', False),
    ]
})


def find_image_format(name: Optional[str]) -> Optional[MediaFormat]:
  if not name:
    return None
  return IMAGE_FORMATS.get(name)


def find_audio_format(name: Optional[str]) -> Optional[MediaFormat]:
  if not name:
    return None
  return AUDIO_FORMATS.get(name)


def find_image_format_by_content_type(content_type: Optional[str]) -> Optional[MediaFormat]:
  if not content_type:
    return None
  ct = content_type.lower().split(';', 1)[0].strip()
  for f in IMAGE_FORMATS.values():
    if f.content_type == ct:
      return f
  return None


def supported_format_names(audio: bool) -> tuple[str, ...]:
  if audio:
    return tuple(IMAGE_FORMATS) + tuple(AUDIO_FORMATS)
  return tuple(IMAGE_FORMATS)
