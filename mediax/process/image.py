from types import MappingProxyType
from typing import Mapping, Optional

from pyvips import Error as VipsError  # type: ignore
from pyvips import Image, Interesting  # type: ignore
from pyvips import Size as VipsSize  # type: ignore

from mediax.directive import Directives
from mediax.errors import ImageTransformFailed
from mediax.mediaformat import (
    MediaFormat,
    find_image_format,
    find_image_format_by_content_type
)
from mediax.process.model import Transformed

# Same as VIPS_MAX_COORD; leaves the dimension unconstrained.
UNCONSTRAINED = 10000000

# Loaders whose images have a saver, for sources with an unrecognized content type.
LOADER_FORMATS: Mapping[str, str] = MappingProxyType({
    'jpegload': 'jpg',
    'pngload': 'png',
    'webpload': 'webp',
    'gifload': 'gif',
    'tiffload': 'tif',
    'heifload': 'avif',
})


def needs_rotation(image: Image) -> bool:
  if image.get_typeof('orientation') == 0:
    return False
  return image.get('orientation') != 1


def resize(image: Image, width: Optional[int], height: Optional[int]) -> Image:
  if width is not None and height is not None:
    return image.thumbnail_image(width, height=height, size=VipsSize.BOTH, crop=Interesting.CENTRE)
  if width is not None:
    return image.thumbnail_image(width, height=UNCONSTRAINED, size=VipsSize.BOTH)
  if height is not None:
    return image.thumbnail_image(UNCONSTRAINED, height=height, size=VipsSize.BOTH)
  return image


def resolve_target(directives: Directives) -> Optional[MediaFormat]:
  target = find_image_format(directives.format)
  if target is None or not target.encodable:
    return None
  return target


def resolve_source(image: Image, content_type: str) -> Optional[MediaFormat]:
  source = find_image_format_by_content_type(content_type)
  if source is not None and source.encodable:
    return source

  if image.get_typeof('vips-loader') == 0:
    return None
  loader = image.get('vips-loader').removesuffix('_buffer')
  return find_image_format(LOADER_FORMATS.get(loader))


def encode(image: Image, target: MediaFormat, quality: Optional[int]) -> bytes:
  if quality is not None and target.supports_quality:
    return image.write_to_buffer(target.suffix, Q=quality)
  return image.write_to_buffer(target.suffix)


def transform_image(body: bytes, content_type: str, directives: Directives) -> Transformed:
  """Resize, auto-rotate and re-encode one image.

  Without a usable target format the image is re-encoded in its source
  format and keeps the source content type.
  """
  try:
    decoded: Image = Image.new_from_buffer(body, '')
    image = decoded

    if needs_rotation(image):
      image = image.autorot()

    image = resize(image, directives.width, directives.height)

    target = resolve_target(directives)
    if target is not None:
      return Transformed(encode(image, target, directives.quality), target.content_type)

    source = resolve_source(decoded, content_type)
    if source is None:
      raise ImageTransformFailed(f'unsupported source format: {content_type}')

    return Transformed(encode(image, source, None), content_type)
  except VipsError as e:
    raise ImageTransformFailed(str(e))
