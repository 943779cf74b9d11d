from urllib import parse

from mediax.log import init_logging
from mediax.typing import CustomResourceEvent, CustomResourceResult

logger = init_logging(__name__)


def hostname_of(url: str) -> str:
  hostname = parse.urlparse(url).hostname
  if not hostname:
    raise ValueError(f'no hostname in url: {url}')
  return hostname


def on_event(event: CustomResourceEvent) -> CustomResourceResult:
  """Expose the host name of the compute function URL to the CDN origin."""
  props = event['ResourceProperties']
  physical_id = event.get('PhysicalResourceId', f"mediax-{props['AppId']}")

  logger.debug({
      'message': 'custom resource event',
      'request_type': event['RequestType'],
      'url': props['Url'],
  })

  if event['RequestType'] == 'Delete':
    return {'PhysicalResourceId': physical_id}

  return {
      'PhysicalResourceId': physical_id,
      'Data': {
          'HostName': hostname_of(props['Url']),
      },
  }
