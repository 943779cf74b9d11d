from typing import Literal, NewType, NotRequired, TypedDict

HttpPath = NewType('HttpPath', str)
S3Key = NewType('S3Key', str)


class Header(TypedDict):
  key: NotRequired[str]
  value: str


class ViewerRequest(TypedDict):
  method: Literal['GET', 'HEAD', 'OPTIONS', 'TRACE', 'PUT', 'DELETE', 'POST', 'PATCH', 'CONNECT']
  uri: HttpPath
  querystring: str
  headers: dict[str, list[Header]]
  clientIp: str


class ViewerRequestConfig(TypedDict):
  distributionDomainName: str
  distributionId: str
  eventType: Literal['viewer-request']
  requestId: str


class ViewerRequestRecord(TypedDict):
  config: ViewerRequestConfig
  request: ViewerRequest


class ViewerRequestRecordContainer(TypedDict):
  cf: ViewerRequestRecord


class ViewerRequestEvent(TypedDict):
  Records: list[ViewerRequestRecordContainer]


class FunctionUrlHttp(TypedDict):
  method: str
  path: str
  protocol: NotRequired[str]
  sourceIp: NotRequired[str]
  userAgent: NotRequired[str]


class FunctionUrlRequestContext(TypedDict):
  http: FunctionUrlHttp
  domainName: NotRequired[str]
  requestId: NotRequired[str]


class FunctionUrlEvent(TypedDict):
  version: NotRequired[str]
  rawPath: str
  rawQueryString: NotRequired[str]
  headers: dict[str, str]
  requestContext: FunctionUrlRequestContext
  isBase64Encoded: NotRequired[bool]
  body: NotRequired[str]


class FunctionUrlResponse(TypedDict):
  statusCode: int
  headers: NotRequired[dict[str, str]]
  body: NotRequired[str]
  isBase64Encoded: NotRequired[bool]


class ResourceProperties(TypedDict):
  AppId: str
  Url: str


class CustomResourceEvent(TypedDict):
  RequestType: Literal['Create', 'Update', 'Delete']
  ResourceProperties: ResourceProperties
  PhysicalResourceId: NotRequired[str]


class CustomResourceResult(TypedDict):
  PhysicalResourceId: str
  Data: NotRequired[dict[str, str]]
