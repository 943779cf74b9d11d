"""Two-origin fallback chain in front of the compute tier.

The CDN asks the cache bucket first. When the bucket answers with the status
it uses for absent keys, the identical path is sent once to the compute
endpoint together with the shared secret. Whatever the fallback answers is
final.
"""
import base64
import dataclasses
import json
from enum import Enum
from logging import Logger
from typing import Callable
from urllib import parse

from botocore.exceptions import ClientError
from mypy_boto3_lambda.client import LambdaClient
from mypy_boto3_s3.client import S3Client

from mediax.config import SECRET_HEADER, DeploymentParams
from mediax.log import init_logging
from mediax.process.index import METADATA_HEADER_PREFIX
from mediax.typing import FunctionUrlEvent, FunctionUrlResponse, HttpPath, S3Key
from mediax.urlrewrite.index import normalize

logger = init_logging(__name__)

Invoke = Callable[[FunctionUrlEvent], FunctionUrlResponse]


class OriginState(Enum):
  PRIMARY = 0
  FALLBACK = 1


@dataclasses.dataclass(frozen=True)
class OriginResponse:
  status: int
  headers: dict[str, str]
  body: bytes
  state: OriginState
  ttl: int = 0


def key_from_path(path: HttpPath) -> S3Key:
  return S3Key(parse.unquote(path[1:]))


def status_of_client_error(e: ClientError) -> int:
  return e.response.get('ResponseMetadata', {}).get('HTTPStatusCode', 500)


class S3Origin:

  def __init__(self, s3: S3Client, bucket: str):
    self.s3 = s3
    self.bucket = bucket

  def fetch(self, path: HttpPath) -> OriginResponse:
    try:
      res = self.s3.get_object(Bucket=self.bucket, Key=key_from_path(path))
    except ClientError as e:
      return OriginResponse(status_of_client_error(e), {}, b'', OriginState.PRIMARY)

    headers = {f'{METADATA_HEADER_PREFIX}{k}': v for k, v in res.get('Metadata', {}).items()}
    headers['content-type'] = res.get('ContentType', 'binary/octet-stream')
    if 'CacheControl' in res:
      headers['cache-control'] = res['CacheControl']

    return OriginResponse(200, headers, res['Body'].read(), OriginState.PRIMARY)


class FunctionOrigin:

  def __init__(self, invoke: Invoke, secret_key: str):
    self.invoke = invoke
    self.secret_key = secret_key

  @classmethod
  def from_lambda_client(
      cls,
      client: LambdaClient,
      function_name: str,
      secret_key: str,
  ) -> 'FunctionOrigin':

    def invoke(event: FunctionUrlEvent) -> FunctionUrlResponse:
      res = client.invoke(
          FunctionName=function_name,
          InvocationType='RequestResponse',
          Payload=json.dumps(event).encode())
      payload = res['Payload'].read()
      if 'FunctionError' in res:
        return {'statusCode': 502, 'body': payload.decode(errors='replace')}
      return json.loads(payload)

    return cls(invoke, secret_key)

  def event(self, path: HttpPath) -> FunctionUrlEvent:
    return {
        'version': '2.0',
        'rawPath': path,
        'rawQueryString': '',
        'headers': {
            SECRET_HEADER: self.secret_key,
        },
        'requestContext': {
            'http': {
                'method': 'GET',
                'path': path,
            },
        },
        'isBase64Encoded': False,
    }

  def fetch(self, path: HttpPath) -> OriginResponse:
    res = self.invoke(self.event(path))

    body = res.get('body', '')
    data = base64.b64decode(body) if res.get('isBase64Encoded', False) else body.encode()
    headers = {k.lower(): v for k, v in res.get('headers', {}).items()}

    return OriginResponse(res['statusCode'], headers, data, OriginState.FALLBACK)


class OriginGroup:

  def __init__(
      self,
      log: Logger,
      params: DeploymentParams,
      primary: S3Origin,
      fallback: FunctionOrigin,
  ):
    self.log = log
    self.params = params
    self.primary = primary
    self.fallback = fallback

  @classmethod
  def from_params(
      cls,
      log: Logger,
      params: DeploymentParams,
      s3: S3Client,
      invoke: Invoke,
  ) -> 'OriginGroup':
    return cls(
        log=log,
        params=params,
        primary=S3Origin(s3, params.cache_bucket_name),
        fallback=FunctionOrigin(invoke, params.secret_key))

  def resolve(self, path: HttpPath) -> OriginResponse:
    res = self.primary.fetch(path)

    if res.status in self.params.fallback_status_codes:
      self.log.debug({
          'message': 'falling back',
          'path': path,
          'primary_status': res.status,
      })
      res = self.fallback.fetch(path)

    self.log.debug({
        'message': 'resolved',
        'path': path,
        'status': res.status,
        'state': res.state.name,
    })

    return dataclasses.replace(
        res,
        headers={
            **res.headers,
            **self.params.cors_headers(),
        },
        ttl=self.params.effective_ttl(res.headers.get('cache-control')))

  def request(
      self,
      uri: str,
      querystring: str,
      accept: str,
      audio: bool = True,
  ) -> OriginResponse:
    return self.resolve(normalize(uri, querystring, accept, audio))
