import io
import json
import logging

import mediax

from .log import MyJsonFormatter, init_logging


def format_record(msg: object, level: int = logging.INFO) -> dict:
  record = logging.LogRecord('mediax.test', level, __file__, 1, msg, None, None)
  return json.loads(MyJsonFormatter().format(record))


def test_formatter_adds_fields() -> None:
  log = format_record({'message': 'transformed', 'path': '/テスト.jpg/original'})

  assert 'transformed' == log['message']
  assert '/テスト.jpg/original' == log['path']
  assert 'INFO' == log['level']
  assert mediax.version == log['version']
  assert log['_ts'].endswith('Z')


def test_formatter_keeps_non_ascii() -> None:
  record = logging.LogRecord('mediax.test', logging.DEBUG, __file__, 1, 'テスト', None, None)
  assert 'テスト' in MyJsonFormatter().format(record)


def test_init_logging() -> None:
  log = init_logging('mediax.test_log')
  init_logging('mediax.test_log')

  assert 1 == len(log.handlers)
  assert not log.propagate

  stream = io.StringIO()
  handler = log.handlers[0]
  assert isinstance(handler, logging.StreamHandler)
  handler.setStream(stream)
  log.debug({'message': 'hello'})

  assert 'hello' == json.loads(stream.getvalue())['message']
  assert 'DEBUG' == json.loads(stream.getvalue())['level']
