from aws_lambda_powertools.utilities.typing import LambdaContext

from mediax.process import index as process
from mediax.resource import index as resource
from mediax.typing import (
    CustomResourceEvent,
    CustomResourceResult,
    FunctionUrlEvent,
    FunctionUrlResponse,
    ViewerRequest,
    ViewerRequestEvent
)
from mediax.urlrewrite import index as urlrewrite


def url_rewrite_lambda_handler(
    event: ViewerRequestEvent,
    _: LambdaContext,
) -> ViewerRequest:
  # # For debugging
  # print('event:')
  # print(json.dumps(event))

  ret = urlrewrite.lambda_main(event)

  # # For debugging
  # print('return:')
  # print(json.dumps(ret))

  return ret


def process_lambda_handler(
    event: FunctionUrlEvent,
    _: LambdaContext,
) -> FunctionUrlResponse:
  # # For debugging
  # print('event:')
  # print(json.dumps(event))

  ret = process.lambda_main(event)

  # # For debugging
  # print('return:')
  # print(json.dumps(ret))

  return ret


def resource_lambda_handler(
    event: CustomResourceEvent,
    _: LambdaContext,
) -> CustomResourceResult:
  return resource.on_event(event)
