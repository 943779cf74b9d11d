from typing import Callable, Generator, Optional

import boto3
import pytest
from moto import mock_aws
from mypy_boto3_s3.client import S3Client
from pyvips import GValue, Image  # type: ignore

REGION = 'us-east-1'
APP_ID = 'mediax-test'
ORIGIN_BUCKET = 'mediax-origin'
CACHE_BUCKET = 'mediax-origin.thumb'
SECRET_KEY = 'a5b0d3a1f1c44e2b8b7e6a1d9c0f2e34'

MakeImage = Callable[..., bytes]


@pytest.fixture(autouse=True)
def aws_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
  monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
  monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
  monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
  monkeypatch.setenv('AWS_DEFAULT_REGION', REGION)


@pytest.fixture
def s3() -> Generator[S3Client, None, None]:
  with mock_aws():
    client = boto3.client('s3', region_name=REGION)
    client.create_bucket(Bucket=ORIGIN_BUCKET)
    client.create_bucket(Bucket=CACHE_BUCKET)
    yield client


@pytest.fixture
def make_image() -> MakeImage:

  def fn(
      width: int = 400,
      height: int = 300,
      suffix: str = '.jpg',
      orientation: Optional[int] = None,
  ) -> bytes:
    image = (Image.black(width, height, bands=3) + [200, 120, 40]).cast('uchar')
    if orientation is not None:
      image = image.copy()
      image.set_type(GValue.gint_type, 'orientation', orientation)
    return image.write_to_buffer(suffix)

  return fn
