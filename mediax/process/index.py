import base64
import os
import secrets
import time
from http import HTTPStatus
from logging import Logger
from typing import Any, Mapping, Optional, Tuple
from urllib import parse

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from mypy_boto3_s3.client import S3Client

from mediax.config import RESPONSE_SIZE_LIMIT, SECRET_HEADER, Config, ResponseMode
from mediax.directive import AUDIO_OPTION_KEYS, IMAGE_OPTION_KEYS, ORIGINAL, Directives
from mediax.errors import (
    CacheUploadFailed,
    ConfigError,
    MediaxError,
    MethodNotAllowed,
    OriginDownloadFailed,
    Unauthorized
)
from mediax.log import init_logging
from mediax.mediaformat import MediaKind
from mediax.process.audio import transform_audio
from mediax.process.image import transform_image
from mediax.process.model import OriginObject, Transformed
from mediax.typing import FunctionUrlEvent, FunctionUrlResponse, S3Key

logger = init_logging(__name__)

METADATA_HEADER_PREFIX = 'x-amz-meta-'


def split_path(path: str) -> Tuple[S3Key, str]:
  """Split ``/{originalPath...}/{directiveString}`` into its two parts."""
  segments = path.split('/')
  directive_string = parse.unquote(segments.pop())
  if 0 < len(segments) and segments[0] == '':
    segments = segments[1:]
  return S3Key(parse.unquote('/'.join(segments))), directive_string


def needs_transform(
    content_type: str,
    directive_string: str,
    directives: Optional[Directives],
) -> Optional[MediaKind]:
  """Return which routine applies, or None to serve the original unchanged."""
  if directive_string == ORIGINAL or directives is None:
    return None

  match MediaKind.from_content_type(content_type):
    case MediaKind.IMAGE if directives.has_any(IMAGE_OPTION_KEYS):
      return MediaKind.IMAGE
    case MediaKind.AUDIO if directives.has_any(AUDIO_OPTION_KEYS):
      return MediaKind.AUDIO
    case _:
      return None


def metadata_headers(metadata: Mapping[str, str]) -> dict[str, str]:
  return {f'{METADATA_HEADER_PREFIX}{k}': v for k, v in metadata.items()}


def error_response(message: str) -> FunctionUrlResponse:
  return {
      'statusCode': HTTPStatus.INTERNAL_SERVER_ERROR.value,
      'body': message,
  }


def inline_response(
    body: bytes,
    content_type: str,
    cache_control: str,
    metadata: Mapping[str, str],
) -> FunctionUrlResponse:
  return {
      'statusCode': HTTPStatus.OK.value,
      'headers': {
          **metadata_headers(metadata),
          'Content-Type': content_type,
          'Cache-Control': cache_control,
      },
      'body': base64.b64encode(body).decode(),
      'isBase64Encoded': True,
  }


def redirect_response(key: S3Key, directives: Optional[Directives]) -> FunctionUrlResponse:
  location = f'/{parse.quote(key)}'
  if directives is not None and not directives.is_empty():
    location = f'{location}?{directives.to_query()}'

  return {
      'statusCode': HTTPStatus.FOUND.value,
      'headers': {
          'Location': location,
          'Cache-Control': 'no-cache',
      },
  }


def base64_size(n: int) -> int:
  return (n + 2) // 3 * 4


class Job:
  """State of one compute request. Never shared between requests."""

  def __init__(self, server: 'MediaServer', path: str):
    self.server = server
    self.path = path
    self.log_context: dict[str, Any] = {'path': path}
    self.start_ns = time.time_ns()

  def log_debug(self, message: str, dict: dict[str, Any]) -> None:
    self.server.log.debug({
        'message': message,
        **self.log_context,
        **dict,
    })

  def log_error(self, message: str, dict: dict[str, Any]) -> None:
    self.server.log.error({
        'message': message,
        **self.log_context,
        **dict,
    })

  def lap(self, step: str) -> None:
    now = time.time_ns()
    if self.server.config.log_timing:
      self.log_debug('timing', {'step': step, 'took_us': (now - self.start_ns) // 1000})
    self.start_ns = now

  def transform(
      self,
      kind: MediaKind,
      origin: OriginObject,
      key: S3Key,
      directives: Directives,
  ) -> Transformed:
    config = self.server.config
    try:
      match kind:
        case MediaKind.IMAGE:
          return transform_image(origin.body, origin.content_type, directives)
        case MediaKind.AUDIO:
          return transform_audio(
              self.server.log, config.ffmpeg_path, origin.body, origin.content_type, key,
              directives)
        case _:
          raise Exception('system error')
    finally:
      self.lap(f'Transform {kind.value}')

  def run(self, method: str, secret: Optional[str], path: str) -> FunctionUrlResponse:
    server = self.server
    server.authorize(method, secret)

    key, directive_string = split_path(path)
    cache_key = S3Key(f'{key}/{directive_string}')
    self.log_context['cache_key'] = cache_key

    try:
      origin = server.download(key)
    finally:
      self.lap('Download origin file')

    directives = Directives.parse(directive_string)
    self.log_context['directives'] = None if directives is None else directives.serialize()

    kind = needs_transform(origin.content_type, directive_string, directives)
    if kind is None:
      self.log_debug('passthrough', {'content_type': origin.content_type})
      try:
        server.upload(cache_key, origin.body, origin.content_type, origin.metadata, True)
      finally:
        self.lap('Upload origin file')
      return server.respond(key, directives, origin.body, origin.content_type, origin.metadata)

    assert directives is not None
    transformed = self.transform(kind, origin, key, directives)

    try:
      server.upload(
          cache_key, transformed.body, transformed.content_type, origin.metadata, False)
    finally:
      self.lap('Upload transformed file')

    self.log_debug(
        'transformed', {
            'content_type': transformed.content_type,
            'original_size': len(origin.body),
            'size': len(transformed.body),
        })
    return server.respond(
        key, directives, transformed.body, transformed.content_type, origin.metadata)

  def process(self, method: str, secret: Optional[str]) -> FunctionUrlResponse:
    try:
      return self.run(method, secret, self.path)
    except MediaxError as e:
      self.log_error(e.message, {'error': type(e).__name__, 'reason': e.reason})
      return error_response(e.message)


class MediaServer:
  instances: dict[Config, 'MediaServer'] = {}

  def __init__(self, log: Logger, config: Config, s3: S3Client):
    self.log = log
    self.config = config
    self.s3 = s3

  @classmethod
  def from_config(cls, log: Logger, config: Config) -> 'MediaServer':
    if config not in cls.instances:
      s3 = boto3.client('s3', region_name=config.region)
      cls.instances[config] = cls(log=log, config=config, s3=s3)

    return cls.instances[config]

  def authorize(self, method: str, secret: Optional[str]) -> None:
    if secret is None or not secrets.compare_digest(
        secret.encode(), self.config.secret_key.encode()):
      raise Unauthorized('secret header mismatch')

    if method != 'GET':
      raise MethodNotAllowed(f'method: {method}')

  def download(self, key: S3Key) -> OriginObject:
    try:
      res = self.s3.get_object(Bucket=self.config.origin_bucket, Key=key)
      body = res['Body'].read()
    except (ClientError, BotoCoreError) as e:
      raise OriginDownloadFailed(str(e))

    return OriginObject(
        body=body, content_type=res.get('ContentType', ''), metadata=res.get('Metadata', {}))

  def upload(
      self,
      key: S3Key,
      body: bytes,
      content_type: str,
      metadata: Mapping[str, str],
      passthrough: bool,
  ) -> None:
    if self.config.cache_bucket is None:
      return

    try:
      self.s3.put_object(
          Bucket=self.config.cache_bucket,
          Key=key,
          Body=body,
          ContentType=content_type,
          CacheControl=self.config.cache_control,
          Metadata=dict(metadata))
    except (ClientError, BotoCoreError) as e:
      if passthrough:
        raise CacheUploadFailed(str(e), message='Could not upload origin file to S3')
      raise CacheUploadFailed(str(e))

  def should_redirect(self, size: int) -> bool:
    # Nothing to serve a redirect from without a cache bucket.
    if self.config.cache_bucket is None:
      return False

    match self.config.response_mode:
      case ResponseMode.INLINE:
        return False
      case ResponseMode.REDIRECT:
        return True
      case ResponseMode.AUTO:
        return RESPONSE_SIZE_LIMIT < base64_size(size)
      case _:
        raise Exception('system error')

  def respond(
      self,
      key: S3Key,
      directives: Optional[Directives],
      body: bytes,
      content_type: str,
      metadata: Mapping[str, str],
  ) -> FunctionUrlResponse:
    if self.should_redirect(len(body)):
      return redirect_response(key, directives)
    return inline_response(body, content_type, self.config.cache_control, metadata)

  def process(self, method: str, secret: Optional[str], path: str) -> FunctionUrlResponse:
    return Job(self, path).process(method, secret)


def lambda_main(event: FunctionUrlEvent) -> FunctionUrlResponse:
  try:
    config = Config.from_env(os.environ)
  except ConfigError as e:
    logger.error({'message': 'invalid configuration', 'reason': str(e)})
    raise

  server = MediaServer.from_config(logger, config)

  http = event['requestContext']['http']
  secret = event['headers'].get(SECRET_HEADER)
  path = http.get('path') or event['rawPath']

  server.log.debug({'message': 'request', 'method': http['method'], 'path': path})
  return server.process(http['method'], secret, path)
