from typing import Optional
from urllib import parse

from mediax.directive import Directives, resolve_options
from mediax.log import init_logging
from mediax.typing import HttpPath, ViewerRequest, ViewerRequestEvent

logger = init_logging(__name__)


def get_accept_header(req: ViewerRequest) -> str:
  if 'accept' not in req['headers']:
    return ''
  return ','.join(h['value'] for h in req['headers']['accept'])


def resolve_directives(querystring: str, accept: str, audio: bool = True) -> Directives:
  pairs = parse.parse_qsl(querystring, keep_blank_values=True)
  return resolve_options(pairs, accept, audio)


def normalize(uri: str, querystring: str, accept: str, audio: bool = True) -> HttpPath:
  directives = resolve_directives(querystring, accept, audio)
  return HttpPath(f'{uri}/{directives.serialize()}')


def normalize_directive_string(s: str, audio: bool = True) -> Optional[str]:
  directives = Directives.parse(s)
  if directives is None:
    return None
  if not audio:
    directives = resolve_options(directives.items(), '', audio)
  return directives.serialize()


def lambda_main(event: ViewerRequestEvent, audio: bool = True) -> ViewerRequest:
  req = event['Records'][0]['cf']['request']
  accept_header = get_accept_header(req)
  qstr = req['querystring']
  path = req['uri']

  req['uri'] = normalize(path, qstr, accept_header, audio)
  # The directive string is the only channel to the cache key and the compute tier.
  req['querystring'] = ''

  logger.debug({
      'message': 'rewritten',
      'path': path,
      'qstr': qstr,
      'accept_header': accept_header,
      'uri': req['uri'],
  })

  return req
