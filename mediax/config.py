import dataclasses
import hashlib
import re
from enum import Enum
from typing import Mapping, Optional

from mypy_boto3_s3.type_defs import BucketLifecycleConfigurationTypeDef

from mediax.errors import ConfigError

SECRET_HEADER = 'x-origin-secret-header'

DEFAULT_CACHE_TTL = 'max-age=31622400'
DEFAULT_CACHE_EXPIRATION_DAYS = 90
DEFAULT_CDN_TTL = 24 * 60 * 60
DEFAULT_CDN_MIN_TTL = 0
DEFAULT_CDN_MAX_TTL = 365 * 24 * 60 * 60
DEFAULT_FALLBACK_STATUS_CODES = frozenset({403})
DEFAULT_LAMBDA_MEMORY = 1500
DEFAULT_LAMBDA_TIMEOUT = 60

# Lambda function URLs cap synchronous response payloads at 6 MB.
RESPONSE_SIZE_LIMIT = 6 * 1024 * 1024

s_maxage_re = re.compile(r'(?:^|[\s,])s-maxage=(\d+)')
max_age_re = re.compile(r'(?:^|[\s,])max-age=(\d+)')
uncacheable_re = re.compile(r'(?:^|[\s,])(?:no-cache|no-store|private)(?:$|[\s,])')


def parse_bool(s: str) -> bool:
  return s.strip().lower() == 'true'


def parse_int(name: str, s: str) -> int:
  try:
    n = int(s)
  except ValueError:
    raise ConfigError(f'"{name}" must be an integer: {s}')
  if n < 0:
    raise ConfigError(f'"{name}" must not be negative: {s}')
  return n


class ResponseMode(Enum):
  INLINE = 'inline'
  REDIRECT = 'redirect'
  AUTO = 'auto'


@dataclasses.dataclass(eq=True, frozen=True)
class Config:
  """Runtime configuration of the compute tier, built once per process."""
  region: str
  origin_bucket: str
  cache_bucket: Optional[str]
  cache_control: str
  secret_key: str
  log_timing: bool
  response_mode: ResponseMode
  ffmpeg_path: str

  @classmethod
  def from_env(cls, env: Mapping[str, str]) -> 'Config':
    origin_bucket = env.get('ORIGIN_BUCKET_NAME', '')
    if origin_bucket == '':
      raise ConfigError('ORIGIN_BUCKET_NAME can not be empty')

    secret_key = env.get('SECRET_KEY', '')
    if secret_key == '':
      raise ConfigError('SECRET_KEY can not be empty')

    mode = env.get('RESPONSE_MODE', ResponseMode.AUTO.value).lower()
    try:
      response_mode = ResponseMode(mode)
    except ValueError:
      raise ConfigError(f'unknown RESPONSE_MODE: {mode}')

    return cls(
        region=env.get('AWS_REGION', 'us-east-1'),
        origin_bucket=origin_bucket,
        cache_bucket=env.get('CACHE_BUCKET_NAME') or None,
        cache_control=env.get('CACHE_TTL') or DEFAULT_CACHE_TTL,
        secret_key=secret_key,
        log_timing=parse_bool(env.get('LOG_TIMING', 'false')),
        response_mode=response_mode,
        ffmpeg_path=env.get('FFMPEG_PATH') or 'ffmpeg')


@dataclasses.dataclass(eq=True, frozen=True)
class DeploymentParams:
  """Deployment-wide settings shared by the CDN, storage and compute tiers."""
  app_id: str
  origin_bucket: str
  cache_bucket_enabled: bool = True
  cache_bucket_name: str = ''
  cache_expiration_days: int = DEFAULT_CACHE_EXPIRATION_DAYS
  cache_ttl: str = DEFAULT_CACHE_TTL
  cors_enabled: bool = True
  cdn_default_ttl: int = DEFAULT_CDN_TTL
  cdn_min_ttl: int = DEFAULT_CDN_MIN_TTL
  cdn_max_ttl: int = DEFAULT_CDN_MAX_TTL
  fallback_status_codes: frozenset[int] = DEFAULT_FALLBACK_STATUS_CODES
  lambda_memory: int = DEFAULT_LAMBDA_MEMORY
  lambda_timeout: int = DEFAULT_LAMBDA_TIMEOUT
  log_timing: bool = True

  @classmethod
  def from_context(cls, app_id: str, ctx: Mapping[str, str]) -> 'DeploymentParams':
    origin_bucket = ctx.get('S3_ORIGIN_BUCKET_NAME', '')
    if origin_bucket == '':
      raise ConfigError('S3_ORIGIN_BUCKET_NAME can not be empty')

    def int_of(name: str, default: int) -> int:
      return parse_int(name, ctx[name]) if name in ctx else default

    def bool_of(name: str, default: bool) -> bool:
      return parse_bool(ctx[name]) if name in ctx else default

    codes = ctx.get('CLOUDFRONT_FALLBACK_STATUS_CODES', '')
    fallback_status_codes = (
        frozenset(parse_int('CLOUDFRONT_FALLBACK_STATUS_CODES', c)
                  for c in codes.split(',')) if codes else DEFAULT_FALLBACK_STATUS_CODES)

    params = cls(
        app_id=app_id,
        origin_bucket=origin_bucket,
        cache_bucket_enabled=bool_of('S3_CACHE_BUCKET_ENABLED', True),
        cache_bucket_name=ctx.get('S3_CACHE_BUCKET_NAME') or f'{origin_bucket}.thumb',
        cache_expiration_days=int_of(
            'S3_CACHE_BUCKET_EXPIRATION_DAYS', DEFAULT_CACHE_EXPIRATION_DAYS),
        cache_ttl=ctx.get('S3_CACHE_BUCKET_CACHE_TTL') or DEFAULT_CACHE_TTL,
        cors_enabled=bool_of('CLOUDFRONT_CORS_ENABLED', True),
        cdn_default_ttl=int_of('CLOUDFRONT_DEFAULT_TTL', DEFAULT_CDN_TTL),
        cdn_min_ttl=int_of('CLOUDFRONT_MIN_TTL', DEFAULT_CDN_MIN_TTL),
        cdn_max_ttl=int_of('CLOUDFRONT_MAX_TTL', DEFAULT_CDN_MAX_TTL),
        fallback_status_codes=fallback_status_codes,
        lambda_memory=int_of('LAMBDA_MEMORY', DEFAULT_LAMBDA_MEMORY),
        lambda_timeout=int_of('LAMBDA_TIMEOUT', DEFAULT_LAMBDA_TIMEOUT),
        log_timing=bool_of('LOG_TIMING', True))

    if not params.cdn_min_ttl <= params.cdn_default_ttl <= params.cdn_max_ttl:
      raise ConfigError(
          'CloudFront TTLs must satisfy min <= default <= max: '
          f'{params.cdn_min_ttl}, {params.cdn_default_ttl}, {params.cdn_max_ttl}')

    if params.cache_expiration_days == 0:
      raise ConfigError('S3_CACHE_BUCKET_EXPIRATION_DAYS must be positive')

    return params

  @property
  def secret_key(self) -> str:
    return hashlib.md5(self.app_id.encode()).hexdigest()

  def lambda_environment(self, region: str) -> dict[str, str]:
    env = {
        'AWS_REGION': region,
        'ORIGIN_BUCKET_NAME': self.origin_bucket,
        'CACHE_TTL': self.cache_ttl,
        'SECRET_KEY': self.secret_key,
        'LOG_TIMING': 'true' if self.log_timing else 'false',
    }
    if self.cache_bucket_enabled:
      env['CACHE_BUCKET_NAME'] = self.cache_bucket_name
    return env

  def cache_lifecycle_configuration(self) -> BucketLifecycleConfigurationTypeDef:
    return {
        'Rules': [
            {
                'ID': 'expire-transformed',
                'Status': 'Enabled',
                'Filter': {
                    'Prefix': '',
                },
                'Expiration': {
                    'Days': self.cache_expiration_days,
                },
            },
        ],
    }

  def cors_headers(self) -> dict[str, str]:
    if not self.cors_enabled:
      return {}
    return {
        'access-control-allow-origin': '*',
        'access-control-allow-headers': '*',
        'access-control-allow-methods': 'GET',
        'access-control-max-age': str(24 * 60 * 60),
    }

  def effective_ttl(self, cache_control: Optional[str]) -> int:
    if cache_control is None:
      return self.cdn_default_ttl

    cache_control = cache_control.lower()
    if uncacheable_re.search(cache_control):
      return self.cdn_min_ttl

    m = s_maxage_re.search(cache_control) or max_age_re.search(cache_control)
    if m is None:
      return self.cdn_default_ttl

    return max(self.cdn_min_ttl, min(self.cdn_max_ttl, int(m[1])))
